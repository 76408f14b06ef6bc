"""Blob hashing and storage for regular files."""

from __future__ import annotations

import hashlib
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .store import ObjectStore

DEFAULT_CHUNK_SIZE = 65536


def compute_file_hash(filepath: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Compute SHA-1 hash of raw file contents."""
    h = hashlib.sha1()
    with open(filepath, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            h.update(chunk)
    return h.hexdigest()


def write_file_blob(
    filepath: Path,
    store: ObjectStore,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> str:
    """
    Copy a file into the store, hashing the bytes as they are copied.

    The file is read once, so the stored bytes always match the oid even if
    the file changes during the build. The copy is discarded when an object
    with the same hash already exists.

    Returns:
        The blob's hex oid
    """
    store.root.mkdir(parents=True, exist_ok=True)
    h = hashlib.sha1()
    fd, tmp_name = tempfile.mkstemp(dir=store.root, prefix="tmp_blob_")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as out, open(filepath, "rb") as f:
            for chunk in iter(lambda: f.read(chunk_size), b""):
                h.update(chunk)
                out.write(chunk)

        oid = h.hexdigest()
        dst = store.object_path(oid)
        dst.parent.mkdir(parents=True, exist_ok=True)

        if dst.exists():
            store.stats.objects_skipped += 1
            return oid

        tmp.replace(dst)
        store.stats.objects_written += 1
        return oid
    finally:
        tmp.unlink(missing_ok=True)
