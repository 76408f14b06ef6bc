"""Content-addressed object storage on the local filesystem."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from . import HASH_SIZE
from .blob import DEFAULT_CHUNK_SIZE, compute_file_hash, write_file_blob
from .hexcodec import hex_to_bytes
from .tree import Tree, parse_tree


class StoreError(Exception):
    """Base exception for object store errors."""


class ObjectNotFoundError(StoreError):
    """Requested object is not in the store."""

    def __init__(self, oid: str):
        self.oid = oid
        super().__init__(f"Object not found: {oid}")


@dataclass
class StoreStats:
    """Write counters for one ObjectStore instance."""

    objects_written: int = 0
    objects_skipped: int = 0  # Already present, write was a no-op

    @property
    def total_writes(self) -> int:
        return self.objects_written + self.objects_skipped


class ObjectStore:
    """
    Flat map from object id to bytes, laid out as ``<root>/<oid[:2]>/<oid[2:]>``.

    Objects are immutable: an existing path is never rewritten.
    """

    def __init__(self, root: Path, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.root = Path(root)
        self.chunk_size = chunk_size
        self.stats = StoreStats()

    def object_path(self, oid: str) -> Path:
        """
        Get the path an object is stored at.

        Raises:
            StoreError: if the oid has the wrong length
            InvalidHexDigit: if the oid is not hex
        """
        if len(oid) != HASH_SIZE * 2:
            raise StoreError(f"Object id must be {HASH_SIZE * 2} hex characters: {oid!r}")
        hex_to_bytes(oid)
        return self.root / oid[:2] / oid[2:]

    def has_object(self, oid: str) -> bool:
        return self.object_path(oid).is_file()

    def write_object(self, oid: str, data: bytes) -> bool:
        """
        Store a buffer under its object id.

        Returns:
            True if the object was written, False if it already existed
        """
        dst = self.object_path(oid)
        dst.parent.mkdir(parents=True, exist_ok=True)

        if dst.exists():
            self.stats.objects_skipped += 1
            return False

        # Write-then-rename so the object path is either complete or absent
        tmp = dst.with_name(f"{dst.name}.tmp")
        tmp.write_bytes(data)
        tmp.replace(dst)
        self.stats.objects_written += 1
        return True

    def hash_and_store_file(self, path: Path) -> str:
        """Hash a regular file and store it as a blob. Returns the blob oid."""
        return write_file_blob(path, self, chunk_size=self.chunk_size)

    def read_object(self, oid: str) -> bytes:
        path = self.object_path(oid)
        if not path.is_file():
            raise ObjectNotFoundError(oid)
        return path.read_bytes()

    def read_tree(self, oid: str) -> Tree:
        """Load and decode a stored tree object."""
        return parse_tree(self.read_object(oid))

    def iter_objects(self) -> Iterator[str]:
        """Yield the oid of every stored object, in sorted order."""
        if not self.root.is_dir():
            return
        for prefix_dir in sorted(self.root.iterdir()):
            if not prefix_dir.is_dir() or len(prefix_dir.name) != 2:
                continue
            for object_file in sorted(prefix_dir.iterdir()):
                if object_file.is_file() and not object_file.name.endswith(".tmp"):
                    yield prefix_dir.name + object_file.name

    def count_objects(self) -> int:
        return sum(1 for _ in self.iter_objects())

    def verify_object(self, oid: str) -> bool:
        """Check that the stored bytes still hash to the object's address."""
        path = self.object_path(oid)
        if not path.is_file():
            raise ObjectNotFoundError(oid)
        return compute_file_hash(path, self.chunk_size) == oid
