"""Tests for the on-disk object store and blob writing."""

import builtins
from pathlib import Path

import pytest

import merkle_store.blob as blob_module
from merkle_store.blob import compute_file_hash, write_file_blob
from merkle_store.hexcodec import InvalidHexDigit
from merkle_store.store import ObjectNotFoundError, ObjectStore, StoreError
from merkle_store.tree import EntryKind, Tree, TreeEntry, hash_tree, serialize_tree
from tests.conftest import GOODBYE_WORLD_OID, HELLO_WORLD_OID


class TestObjectPath:
    def test_two_level_layout(self, store_root: Path):
        store = ObjectStore(store_root)
        path = store.object_path(HELLO_WORLD_OID)
        assert path == store_root / "2a" / "ae6c35c94fcfb415dbe95f408b9ce91ee846ed"

    def test_rejects_wrong_length(self, store_root: Path):
        with pytest.raises(StoreError):
            ObjectStore(store_root).object_path("2aae6c")

    def test_rejects_non_hex(self, store_root: Path):
        with pytest.raises(InvalidHexDigit):
            ObjectStore(store_root).object_path("../" + "0" * 37)


class TestWriteObject:
    def test_writes_under_hash_path(self, store_root: Path):
        store = ObjectStore(store_root)
        assert store.write_object(HELLO_WORLD_OID, b"hello world") is True

        path = store_root / HELLO_WORLD_OID[:2] / HELLO_WORLD_OID[2:]
        assert path.read_bytes() == b"hello world"
        assert store.has_object(HELLO_WORLD_OID)

    def test_second_write_is_noop(self, store_root: Path):
        """Writing the same object twice leaves one file and skips the rewrite."""
        store = ObjectStore(store_root)
        store.write_object(HELLO_WORLD_OID, b"hello world")
        path = store.object_path(HELLO_WORLD_OID)
        mtime_before = path.stat().st_mtime_ns

        assert store.write_object(HELLO_WORLD_OID, b"hello world") is False

        assert path.stat().st_mtime_ns == mtime_before
        assert store.stats.objects_written == 1
        assert store.stats.objects_skipped == 1
        assert list(store.iter_objects()) == [HELLO_WORLD_OID]

    def test_existing_object_is_never_overwritten(self, store_root: Path):
        store = ObjectStore(store_root)
        store.write_object(HELLO_WORLD_OID, b"hello world")
        store.write_object(HELLO_WORLD_OID, b"something else")
        assert store.read_object(HELLO_WORLD_OID) == b"hello world"

    def test_no_temp_files_left(self, store_root: Path):
        store = ObjectStore(store_root)
        store.write_object(HELLO_WORLD_OID, b"hello world")
        leftovers = [
            p for p in store_root.rglob("*")
            if p.name.endswith(".tmp") or p.name.startswith("tmp_blob_")
        ]
        assert leftovers == []

    def test_creates_store_root(self, tmp_path: Path):
        store = ObjectStore(tmp_path / "does" / "not" / "exist")
        store.write_object(HELLO_WORLD_OID, b"hello world")
        assert store.has_object(HELLO_WORLD_OID)


class TestBlobs:
    def test_compute_file_hash(self, tmp_path: Path):
        path = tmp_path / "file.txt"
        path.write_bytes(b"hello world")
        assert compute_file_hash(path) == HELLO_WORLD_OID

    def test_compute_file_hash_small_chunks(self, tmp_path: Path):
        path = tmp_path / "file.txt"
        path.write_bytes(b"hello world")
        assert compute_file_hash(path, chunk_size=3) == HELLO_WORLD_OID

    def test_blob_stored_as_raw_bytes(self, tmp_path: Path, store_root: Path):
        path = tmp_path / "file.txt"
        path.write_bytes(b"goodbye world")
        store = ObjectStore(store_root)

        oid = write_file_blob(path, store)

        assert oid == GOODBYE_WORLD_OID
        assert store.read_object(oid) == b"goodbye world"

    def test_identical_files_stored_once(self, tmp_path: Path, store_root: Path):
        store = ObjectStore(store_root)
        for name in ("a.txt", "b.txt", "c.txt"):
            path = tmp_path / name
            path.write_bytes(b"hello world")
            assert store.hash_and_store_file(path) == HELLO_WORLD_OID

        assert store.count_objects() == 1
        assert store.stats.objects_written == 1
        assert store.stats.objects_skipped == 2

    def test_missing_file_raises_oserror(self, tmp_path: Path, store_root: Path):
        with pytest.raises(OSError):
            ObjectStore(store_root).hash_and_store_file(tmp_path / "missing.txt")

    def test_file_read_once(
        self, tmp_path: Path, store_root: Path, monkeypatch: pytest.MonkeyPatch
    ):
        """Hashing and copying share one read of the source file."""
        path = tmp_path / "file.txt"
        path.write_bytes(b"hello world")
        opened = []

        def counting_open(file, *args, **kwargs):
            opened.append(file)
            return builtins.open(file, *args, **kwargs)

        monkeypatch.setattr(blob_module, "open", counting_open, raising=False)
        store = ObjectStore(store_root)

        oid = write_file_blob(path, store, chunk_size=4)

        assert opened == [path]
        assert oid == HELLO_WORLD_OID
        assert store.verify_object(oid)

    def test_no_temp_blobs_left(self, tmp_path: Path, store_root: Path):
        path = tmp_path / "file.txt"
        path.write_bytes(b"hello world")
        store = ObjectStore(store_root)

        write_file_blob(path, store)
        write_file_blob(path, store)

        assert list(store_root.glob("tmp_blob_*")) == []
        assert store.stats.objects_written == 1
        assert store.stats.objects_skipped == 1
        assert list(store.iter_objects()) == [HELLO_WORLD_OID]


class TestReadObjects:
    def test_read_missing_object(self, store_root: Path):
        with pytest.raises(ObjectNotFoundError) as exc_info:
            ObjectStore(store_root).read_object(HELLO_WORLD_OID)
        assert exc_info.value.oid == HELLO_WORLD_OID

    def test_read_tree(self, store_root: Path):
        tree = Tree(entries=[TreeEntry(name="file1.txt", kind=EntryKind.BLOB, oid=HELLO_WORLD_OID)])
        oid = hash_tree(tree)
        store = ObjectStore(store_root)
        store.write_object(oid, serialize_tree(tree))

        assert store.read_tree(oid) == tree

    def test_iter_objects_empty_store(self, tmp_path: Path):
        assert list(ObjectStore(tmp_path / "missing").iter_objects()) == []

    def test_iter_objects_sorted(self, store_root: Path):
        store = ObjectStore(store_root)
        store.write_object(HELLO_WORLD_OID, b"hello world")
        store.write_object(GOODBYE_WORLD_OID, b"goodbye world")
        assert list(store.iter_objects()) == [GOODBYE_WORLD_OID, HELLO_WORLD_OID]

    def test_verify_object(self, store_root: Path):
        store = ObjectStore(store_root)
        store.write_object(HELLO_WORLD_OID, b"hello world")
        assert store.verify_object(HELLO_WORLD_OID)

        store.object_path(HELLO_WORLD_OID).write_bytes(b"tampered")
        assert not store.verify_object(HELLO_WORLD_OID)
