"""Build tree objects for a directory, bottom-up."""

from __future__ import annotations

import fnmatch
import os
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from rich.console import Console
from rich.markup import escape

from .blob import DEFAULT_CHUNK_SIZE
from .store import ObjectStore
from .tree import EntryKind, Tree, TreeEntry, encode_name, hash_tree, serialize_tree


class BlobWriter(Protocol):
    """Hashes a regular file and persists it as a blob."""

    def hash_and_store_file(self, path: Path) -> str: ...


class ObjectSink(Protocol):
    """Receives every tree the builder completes, children before parents."""

    def object_completed(self, tree: Tree, oid: str) -> None: ...


class StoreSink:
    """Write each completed tree to an object store as soon as it is built."""

    def __init__(self, store: ObjectStore):
        self.store = store

    def object_completed(self, tree: Tree, oid: str) -> None:
        self.store.write_object(oid, serialize_tree(tree))


class CollectingSink:
    """Buffer completed trees in memory and write them later with flush()."""

    def __init__(self):
        self.completed: list[tuple[Tree, str]] = []

    def object_completed(self, tree: Tree, oid: str) -> None:
        self.completed.append((tree, oid))

    @property
    def oids(self) -> list[str]:
        return [oid for _, oid in self.completed]

    def flush(self, store: ObjectStore) -> int:
        """Write buffered trees in completion order. Returns number newly written."""
        written = 0
        for tree, oid in self.completed:
            if store.write_object(oid, serialize_tree(tree)):
                written += 1
        self.completed.clear()
        return written


class CallbackSink:
    """Adapt a plain ``callback(tree, oid)`` function to the sink interface."""

    def __init__(self, callback: Callable[[Tree, str], None]):
        self.callback = callback

    def object_completed(self, tree: Tree, oid: str) -> None:
        self.callback(tree, oid)


@dataclass
class BuildStats:
    """Statistics from building a tree."""

    blobs_seen: int = 0
    trees_built: int = 0
    entries_skipped: int = 0  # Excluded names, symlinks, special files
    root_oid: str | None = None


@dataclass
class _Frame:
    """A directory whose children are still being processed."""

    path: Path
    name: str
    pending: Iterator[os.DirEntry]
    entries: list[TreeEntry] = field(default_factory=list)


def _list_directory(path: Path) -> list[os.DirEntry]:
    """Enumerate direct children of a directory, in filesystem order."""
    with os.scandir(path) as it:
        return list(it)


def should_exclude(name: str, exclude_patterns: Iterable[str]) -> bool:
    """Check if a file or directory name matches any exclusion pattern."""
    return any(fnmatch.fnmatch(name, pattern) for pattern in exclude_patterns)


class TreeBuilder:
    """
    Walk a directory depth-first and build its tree objects post-order.

    Files are handed to the blob writer. Every completed tree, including
    the root, is hashed and passed to the sink exactly once before its
    parent is finished. Traversal uses an explicit stack, so nesting depth
    is not limited by the interpreter's recursion limit.
    """

    def __init__(
        self,
        blob_writer: BlobWriter,
        sink: ObjectSink,
        exclude_patterns: Iterable[str] = (),
        exclude_paths: Iterable[Path] = (),
        verbose: bool = False,
        console: Console | None = None,
    ):
        self.blob_writer = blob_writer
        self.sink = sink
        self.exclude_patterns = list(exclude_patterns)
        self.exclude_paths = {Path(p).resolve() for p in exclude_paths}
        self.verbose = verbose
        self.console = console or Console()
        self.stats = BuildStats()

    def build(self, directory: Path) -> Tree:
        """
        Build the tree for a directory and all of its descendants.

        Any OSError from enumeration or blob hashing, and any exception from
        the sink, aborts the build and propagates. A name that is not valid
        UTF-8 raises InvalidNameError. Objects already written are left in
        place.

        Returns:
            The root Tree, with entries in canonical order
        """
        directory = Path(directory)
        self.stats = BuildStats()
        stack = [self._open_frame(directory, ".")]

        while True:
            frame = stack[-1]
            child = next(frame.pending, None)

            if child is not None:
                child_path = frame.path / child.name
                if self._is_excluded(child):
                    self.stats.entries_skipped += 1
                    continue
                # Reject unencodable names before anything is stored for them
                encode_name(child.name)
                if child.is_dir(follow_symlinks=False):
                    name = child.name if frame.name == "." else f"{frame.name}/{child.name}"
                    stack.append(self._open_frame(child_path, name))
                elif child.is_file(follow_symlinks=False):
                    oid = self.blob_writer.hash_and_store_file(child_path)
                    frame.entries.append(TreeEntry(name=child.name, kind=EntryKind.BLOB, oid=oid))
                    self.stats.blobs_seen += 1
                else:
                    self.stats.entries_skipped += 1
                continue

            # All children done: finish this directory
            stack.pop()
            tree = Tree(entries=frame.entries)
            oid = hash_tree(tree)
            self.sink.object_completed(tree, oid)
            self.stats.trees_built += 1

            if self.verbose:
                self.console.print(f"[dim]tree {oid} {escape(frame.name)}[/dim]")

            if not stack:
                self.stats.root_oid = oid
                if self.verbose:
                    self.console.print(
                        f"[dim]Tree build: {self.stats.trees_built} trees, "
                        f"{self.stats.blobs_seen} blobs, "
                        f"{self.stats.entries_skipped} skipped[/dim]"
                    )
                return tree

            stack[-1].entries.append(
                TreeEntry(name=frame.path.name, kind=EntryKind.TREE, oid=oid)
            )

    def _open_frame(self, path: Path, name: str) -> _Frame:
        return _Frame(path=path, name=name, pending=iter(_list_directory(path)))

    def _is_excluded(self, child: os.DirEntry) -> bool:
        if child.is_symlink():
            return True
        if should_exclude(child.name, self.exclude_patterns):
            return True
        if self.exclude_paths and child.is_dir(follow_symlinks=False):
            return Path(child.path).resolve() in self.exclude_paths
        return False


def write_tree(
    source: Path,
    store_root: Path,
    exclude_patterns: Iterable[str] = (),
    verbose: bool = False,
    console: Console | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> str:
    """
    Store every file and directory under ``source`` and return the root tree oid.

    This is the main entry point used by the CLI. The store root is passed
    explicitly so independent stores can be used side by side.

    Args:
        source: Directory to snapshot
        store_root: Object store directory (``<root>/<xx>/<rest>`` layout)
        exclude_patterns: Names to skip (fnmatch patterns)
        verbose: If True, print each completed tree
        console: Rich console for output
        chunk_size: Read size used when hashing files
    """
    store = ObjectStore(store_root, chunk_size=chunk_size)
    builder = TreeBuilder(
        store,
        StoreSink(store),
        exclude_patterns=exclude_patterns,
        exclude_paths=[store_root],
        verbose=verbose,
        console=console,
    )
    builder.build(source)
    return builder.stats.root_oid
