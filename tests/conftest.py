"""Shared test fixtures for merkle-store."""

import os
from pathlib import Path

import pytest
from click.testing import CliRunner

from merkle_store import MST_DIR, OBJECTS_DIR
from merkle_store.config import StoreConfig, save_config
from merkle_store.manifest import create_empty_manifest, save_manifest

HELLO_WORLD_OID = "2aae6c35c94fcfb415dbe95f408b9ce91ee846ed"
GOODBYE_WORLD_OID = "0078bb8e5c9d8abf7f1e4e14c87d9023235b6230"
SUBDIR1_TREE_OID = "bc471dbb2211df7aed5d61db549a92357f1bd749"
SAMPLE_ROOT_OID = "d1ef82b2d2dace20ed273ecf37307171151eee9d"
EMPTY_TREE_OID = "1489f923c4dca729178b3e3233458550d8dddf29"


@pytest.fixture
def cli_runner():
    """Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """
    Create the reference directory.

    Structure:
        sample/
        ├── file1.txt            "hello world"
        └── subdir1/
            └── file2.txt        "goodbye world"
    """
    root = tmp_path / "sample"
    root.mkdir()
    (root / "file1.txt").write_bytes(b"hello world")

    subdir = root / "subdir1"
    subdir.mkdir()
    (subdir / "file2.txt").write_bytes(b"goodbye world")

    return root


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    """An object store directory outside any snapshotted tree."""
    return tmp_path / "objects"


def setup_mst_project(project_root: Path, config: StoreConfig | None = None) -> StoreConfig:
    """Initialize an mst project at the given path without going through the CLI."""
    if config is None:
        config = StoreConfig()

    (project_root / MST_DIR / OBJECTS_DIR).mkdir(parents=True, exist_ok=True)
    save_config(config, project_root)
    save_manifest(create_empty_manifest(), project_root)

    return config


@pytest.fixture
def initialized_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A temporary project with mst initialized, used as the working directory."""
    project = tmp_path / "project"
    project.mkdir()
    (project / "file1.txt").write_bytes(b"hello world")
    (project / "subdir1").mkdir()
    (project / "subdir1" / "file2.txt").write_bytes(b"goodbye world")

    setup_mst_project(project)
    monkeypatch.chdir(project)
    monkeypatch.delenv("MST_OBJECTS_DIR", raising=False)
    monkeypatch.delenv("MST_EXCLUDE", raising=False)
    return project


def make_non_utf8_file(directory: Path, content: bytes) -> None:
    """Create ``bad\\xff.txt`` in a directory, skipping where the filesystem refuses it."""
    path = os.path.join(os.fsencode(directory), b"bad\xff.txt")
    try:
        with open(path, "wb") as f:
            f.write(content)
    except OSError:
        pytest.skip("filesystem does not allow non-UTF-8 file names")
