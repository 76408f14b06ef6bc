"""Manifest file management for Merkle Store."""

import json
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from . import MANIFEST_FILE, MST_DIR


class ManifestStats(BaseModel):
    """Statistics about the last snapshot."""

    trees: int = 0
    blobs: int = 0
    objects_written: int = 0


class Manifest(BaseModel):
    """Manifest recording the most recent root tree."""

    version: int = 1
    created_at: datetime
    updated_at: datetime
    root_oid: str | None = None  # None until the first write-tree
    source: str | None = None
    stats: ManifestStats = Field(default_factory=ManifestStats)


def get_manifest_path(project_root: Path) -> Path:
    """Get the manifest file path."""
    return project_root / MST_DIR / MANIFEST_FILE


def load_manifest(project_root: Path) -> Manifest | None:
    """Load manifest from the project's manifest file.

    Returns None if file doesn't exist.
    """
    manifest_path = get_manifest_path(project_root)

    if not manifest_path.exists():
        return None

    with open(manifest_path) as f:
        data = json.load(f)

    return Manifest.model_validate(data)


def save_manifest(manifest: Manifest, project_root: Path) -> None:
    """Save manifest to the project's manifest file."""
    manifest_path = get_manifest_path(project_root)
    manifest_path.parent.mkdir(parents=True, exist_ok=True)

    # Update the updated_at timestamp
    manifest.updated_at = datetime.now(UTC)

    with open(manifest_path, "w") as f:
        json.dump(manifest.model_dump(mode="json"), f, indent=2, default=str)


def create_empty_manifest() -> Manifest:
    """Create a new empty manifest."""
    now = datetime.now(UTC)
    return Manifest(
        created_at=now,
        updated_at=now,
        root_oid=None,
        stats=ManifestStats(),
    )
