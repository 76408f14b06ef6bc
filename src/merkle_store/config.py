"""Configuration management for Merkle Store."""

import json
import os
from pathlib import Path

from pydantic import BaseModel, Field

from . import CONFIG_FILE, MST_DIR, OBJECTS_DIR
from .blob import DEFAULT_CHUNK_SIZE


class StoreConfig(BaseModel):
    """Configuration for Merkle Store."""

    version: int = 1
    objects_dir: str | None = None  # Absolute or project-relative; None means .merkle-store/objects
    exclude_patterns: list[str] = Field(default=[MST_DIR, ".git"])
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, ge=1024)


def get_mst_dir(project_root: Path) -> Path:
    """Get the .merkle-store directory path."""
    return project_root / MST_DIR


def get_config_path(project_root: Path) -> Path:
    """Get the config file path."""
    return get_mst_dir(project_root) / CONFIG_FILE


def get_objects_dir(project_root: Path, config: StoreConfig) -> Path:
    """Resolve the object store root for a project."""
    if config.objects_dir:
        objects_dir = Path(config.objects_dir).expanduser()
        if not objects_dir.is_absolute():
            objects_dir = project_root / objects_dir
        return objects_dir
    return get_mst_dir(project_root) / OBJECTS_DIR


def load_config(project_root: Path) -> StoreConfig:
    """Load configuration from the project's config file.

    Falls back to defaults if file doesn't exist.
    Environment variables can override config values.
    """
    config_path = get_config_path(project_root)

    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)
        config = StoreConfig.model_validate(data)
    else:
        config = StoreConfig()

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    return config


def save_config(config: StoreConfig, project_root: Path) -> None:
    """Save configuration to the project's config file."""
    config_path = get_config_path(project_root)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        json.dump(config.model_dump(), f, indent=2)


def _apply_env_overrides(config: StoreConfig) -> StoreConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    # MST_OBJECTS_DIR
    if objects_dir := os.environ.get("MST_OBJECTS_DIR"):
        data["objects_dir"] = objects_dir

    # MST_EXCLUDE (comma-separated, replaces the configured list)
    if exclude := os.environ.get("MST_EXCLUDE"):
        data["exclude_patterns"] = [p.strip() for p in exclude.split(",") if p.strip()]

    return StoreConfig.model_validate(data)
