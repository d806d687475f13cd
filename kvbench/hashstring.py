"""Strings that carry a precomputed SDBM hash."""

from __future__ import annotations

_MASK64 = (1 << 64) - 1


def _as_bytes(value: str | bytes) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"expected str or bytes, got {type(value).__name__}")


def sdbm_hash(value: str | bytes) -> int:
    """Return the 64-bit SDBM hash of ``value``.

    Strings are hashed as UTF-8. Each byte is read as a signed char, so
    bytes of 0x80 and above wrap around modulo 2**64.
    """
    result = 0
    for byte in _as_bytes(value):
        c = byte - 256 if byte >= 0x80 else byte
        result = (c + (result << 6) + (result << 16) - result) & _MASK64
    return result


class HashString:
    """An immutable string paired with its SDBM hash.

    Equality checks the hash first and the text only when the hashes match.
    ``len()`` gives the length of the UTF-8 encoding in bytes.
    """

    __slots__ = ("_value", "_hash", "_length")

    def __init__(self, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"expected str, got {type(value).__name__}")
        encoded = value.encode("utf-8")
        self._value = value
        self._length = len(encoded)
        self._hash = sdbm_hash(encoded)

    @property
    def value(self) -> str:
        return self._value

    @property
    def sdbm(self) -> int:
        """The 64-bit SDBM hash of the value."""
        return self._hash

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HashString):
            return NotImplemented
        if self._hash != other._hash:
            return False
        return self._value == other._value

    def __hash__(self) -> int:
        return hash(self._hash)

    def __len__(self) -> int:
        return self._length

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"HashString({self._value!r})"