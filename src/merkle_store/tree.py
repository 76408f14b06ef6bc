"""Tree objects and their canonical binary encoding.

Wire format, all integers big-endian:

    tree  = [u16 entry_count] entry*
    entry = [u8 kind] [u16 record_length] [hash bytes] [utf-8 name bytes]

where ``record_length = 3 + len(hash bytes) + len(name bytes)``.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field
from enum import IntEnum

from . import HASH_SIZE
from .hexcodec import bytes_to_hex, hex_to_bytes

_COUNT = struct.Struct(">H")
_ENTRY_HEADER = struct.Struct(">BH")
_MAX_U16 = 0xFFFF


class TreeError(ValueError):
    """Base exception for tree encoding errors."""


class EntryTooLargeError(TreeError):
    """An entry record or entry count does not fit in 16 bits."""


class TreeFormatError(TreeError):
    """Serialized tree bytes are malformed."""


class InvalidNameError(TreeError):
    """An entry name cannot be encoded as UTF-8."""


class EntryKind(IntEnum):
    """Kind of object a tree entry points to. Value is the on-disk kind byte."""

    BLOB = 0
    TREE = 1


@dataclass(frozen=True)
class TreeEntry:
    """A single (name, kind, oid) entry of a tree."""

    name: str
    kind: EntryKind
    oid: str  # Lowercase hex hash of the referenced object


@dataclass
class Tree:
    """A directory snapshot: an ordered list of entries."""

    entries: list[TreeEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)


def hash_bytes(data: bytes) -> str:
    """Compute the SHA-1 object id of a byte buffer."""
    return hashlib.sha1(data).hexdigest()


def encode_name(name: str) -> bytes:
    """
    Encode an entry name as UTF-8.

    Names read from the filesystem may carry surrogate escapes for bytes
    that are not UTF-8; those cannot be stored.

    Raises:
        InvalidNameError: if the name is not valid UTF-8 text
    """
    try:
        return name.encode("utf-8")
    except UnicodeEncodeError:
        raise InvalidNameError(f"Entry name is not valid UTF-8: {name!r}") from None


def entry_sort_key(entry: TreeEntry) -> tuple[int, str, bytes]:
    """Blobs before trees, then by hex oid; name only breaks exact ties."""
    return (entry.kind, entry.oid, encode_name(entry.name))


def sort_entries(tree: Tree) -> None:
    """Sort a tree's entries in place into canonical order."""
    tree.entries.sort(key=entry_sort_key)


def encode_entry(entry: TreeEntry) -> bytes:
    """
    Encode one entry as a kind/length-prefixed record.

    Raises:
        InvalidHexDigit: if the entry oid is not hex
        InvalidNameError: if the name is not valid UTF-8
        EntryTooLargeError: if the record length exceeds 65535 bytes
    """
    raw_hash = hex_to_bytes(entry.oid)
    name = encode_name(entry.name)
    record_length = _ENTRY_HEADER.size + len(raw_hash) + len(name)
    if record_length > _MAX_U16:
        raise EntryTooLargeError(
            f"Entry name too long: record needs {record_length} bytes (max {_MAX_U16})"
        )
    return _ENTRY_HEADER.pack(int(entry.kind), record_length) + raw_hash + name


def serialize_tree(tree: Tree) -> bytes:
    """
    Serialize an already-sorted tree.

    Entries are written in their current order; use hash_tree() or
    sort_entries() first.
    """
    if len(tree.entries) > _MAX_U16:
        raise EntryTooLargeError(
            f"Tree has {len(tree.entries)} entries (max {_MAX_U16})"
        )
    parts = [_COUNT.pack(len(tree.entries))]
    parts.extend(encode_entry(entry) for entry in tree.entries)
    return b"".join(parts)


def hash_tree(tree: Tree) -> str:
    """Sort the tree in place, serialize it and return its SHA-1 oid."""
    sort_entries(tree)
    return hash_bytes(serialize_tree(tree))


def parse_tree(data: bytes, hash_size: int = HASH_SIZE) -> Tree:
    """
    Decode serialized tree bytes back into a Tree.

    Raises:
        TreeFormatError: on truncation, unknown kinds, bad record lengths
            or trailing bytes
    """
    if len(data) < _COUNT.size:
        raise TreeFormatError("Tree data is shorter than the entry count header")

    (count,) = _COUNT.unpack_from(data, 0)
    offset = _COUNT.size
    prefix_size = _ENTRY_HEADER.size + hash_size
    entries: list[TreeEntry] = []

    for index in range(count):
        if offset + _ENTRY_HEADER.size > len(data):
            raise TreeFormatError(f"Entry {index} header is truncated")
        kind_byte, record_length = _ENTRY_HEADER.unpack_from(data, offset)

        try:
            kind = EntryKind(kind_byte)
        except ValueError:
            raise TreeFormatError(f"Entry {index} has unknown kind {kind_byte}") from None

        if record_length < prefix_size:
            raise TreeFormatError(
                f"Entry {index} record length {record_length} is below {prefix_size}"
            )
        end = offset + record_length
        if end > len(data):
            raise TreeFormatError(f"Entry {index} is truncated")

        hash_start = offset + _ENTRY_HEADER.size
        raw_hash = data[hash_start : hash_start + hash_size]
        try:
            name = data[hash_start + hash_size : end].decode("utf-8")
        except UnicodeDecodeError as e:
            raise TreeFormatError(f"Entry {index} name is not valid UTF-8") from e

        entries.append(TreeEntry(name=name, kind=kind, oid=bytes_to_hex(raw_hash)))
        offset = end

    if offset != len(data):
        raise TreeFormatError(f"{len(data) - offset} trailing bytes after {count} entries")

    return Tree(entries=entries)
