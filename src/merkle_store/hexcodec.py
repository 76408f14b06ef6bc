"""Conversion between hex object ids and their raw byte form."""

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


class HexError(ValueError):
    """Base exception for hex decoding errors."""


class InvalidHexDigit(HexError):
    """A character outside 0-9a-fA-F was found while decoding."""

    def __init__(self, position: int):
        self.position = position
        super().__init__(f"Invalid hex digit at position {position}")


def bytes_to_hex(data: bytes) -> str:
    """Encode bytes as a lowercase hex string with no separators."""
    return data.hex()


def hex_to_bytes(text: str) -> bytes:
    """
    Decode a hex string two characters at a time.

    Accepts upper and lower case digits. A trailing unpaired character is
    dropped without being checked; callers pass fixed-length hashes.

    Raises:
        InvalidHexDigit: at the first non-hex character, with its index
    """
    even = text[: len(text) - len(text) % 2]
    for position, char in enumerate(even):
        if char not in _HEX_DIGITS:
            raise InvalidHexDigit(position)
    return bytes.fromhex(even)
