"""Byte-string helpers: ranges, trimming, splitting, joining and formatting."""

from __future__ import annotations

from collections.abc import Iterable

_INT32 = (-(1 << 31), (1 << 31) - 1)
_INT64 = (-(1 << 63), (1 << 63) - 1)
_UINT32 = (0, (1 << 32) - 1)
_UINT64 = (0, (1 << 64) - 1)


def _as_bytes(value: str | bytes | bytearray | memoryview) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"expected str or bytes, got {type(value).__name__}")


def _check_range(value: int, bounds: tuple[int, int], kind: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected an integer for {kind}, got {type(value).__name__}")
    low, high = bounds
    if not low <= value <= high:
        raise OverflowError(f"{value} does not fit in {kind}")
    return value


def sds_range(s: bytes, start: int, end: int) -> bytes:
    """Return the inclusive slice ``start..end``; negative indexes count from the end."""
    data = _as_bytes(s)
    length = len(data)
    if length == 0:
        return b""
    if start < 0:
        start = max(length + start, 0)
    if end < 0:
        end = max(length + end, 0)
    newlen = 0 if start > end else end - start + 1
    if newlen != 0:
        if start >= length:
            newlen = 0
        elif end >= length:
            end = length - 1
            newlen = 0 if start > end else end - start + 1
    else:
        start = 0
    return data[start:start + newlen]


def sds_trim(s: bytes, cset: str | bytes) -> bytes:
    """Strip bytes found in ``cset`` from both ends of ``s``.

    NUL bytes are always treated as part of the set.
    """
    chars = _as_bytes(cset) + b"\0"
    return _as_bytes(s).strip(chars)


def sds_cmp(a: bytes, b: bytes) -> int:
    """Compare two byte strings.

    Returns -1 or 1 when they differ within the common prefix, otherwise the
    length difference ``len(a) - len(b)``.
    """
    left, right = _as_bytes(a), _as_bytes(b)
    minlen = min(len(left), len(right))
    head_a, head_b = left[:minlen], right[:minlen]
    if head_a == head_b:
        return len(left) - len(right)
    return -1 if head_a < head_b else 1


def split_len(s: bytes, sep: str | bytes) -> list[bytes]:
    """Split ``s`` on every occurrence of the (possibly multi-byte) ``sep``.

    An empty ``s`` gives an empty list; an empty separator is an error.
    """
    data, separator = _as_bytes(s), _as_bytes(sep)
    if not separator:
        raise ValueError("separator must not be empty")
    if not data:
        return []
    return data.split(separator)


def ll2str(value: int) -> bytes:
    """Decimal text of a signed 64-bit integer."""
    return str(_check_range(value, _INT64, "a signed 64-bit integer")).encode("ascii")


def ull2str(value: int) -> bytes:
    """Decimal text of an unsigned 64-bit integer."""
    return str(_check_range(value, _UINT64, "an unsigned 64-bit integer")).encode("ascii")


def from_long_long(value: int) -> bytes:
    """Create a byte string holding the decimal form of a signed 64-bit integer."""
    return ll2str(value)


def map_chars(s: bytes, from_chars: str | bytes, to_chars: str | bytes) -> bytes:
    """Replace each byte found in ``from_chars`` by the byte at the same place in ``to_chars``.

    When a byte appears more than once in ``from_chars`` its first position wins.
    """
    source, target = _as_bytes(from_chars), _as_bytes(to_chars)
    if len(source) != len(target):
        raise ValueError("from_chars and to_chars must have the same length")
    table = bytearray(range(256))
    for src, dst in reversed(list(zip(source, target))):
        table[src] = dst
    return _as_bytes(s).translate(bytes(table))


def join(parts: Iterable[str | bytes], sep: str | bytes) -> bytes:
    """Join ``parts`` with ``sep`` between each pair."""
    return _as_bytes(sep).join(_as_bytes(part) for part in parts)


def grow_zero(s: bytes, length: int) -> bytes:
    """Pad ``s`` with NUL bytes up to ``length``; shorter lengths leave it unchanged."""
    data = _as_bytes(s)
    if length <= len(data):
        return data
    return data + b"\0" * (length - len(data))


def cat_fmt(s: bytes, fmt: str | bytes, *args: object) -> bytes:
    """Append ``fmt`` to ``s``, expanding a small set of directives.

    ``%s``/``%S`` take a string, ``%i`` a 32-bit and ``%I`` a 64-bit signed
    integer, ``%u`` a 32-bit and ``%U``/``%T`` a 64-bit unsigned integer.
    ``%`` followed by any other character emits that character.
    """
    out = bytearray(_as_bytes(s))
    pattern = _as_bytes(fmt)
    remaining = iter(args)

    def next_arg(directive: str) -> object:
        try:
            return next(remaining)
        except StopIteration:
            raise TypeError(f"not enough arguments for %{directive}") from None

    pos = 0
    while pos < len(pattern):
        byte = pattern[pos]
        if byte != ord("%"):
            out.append(byte)
            pos += 1
            continue
        if pos + 1 >= len(pattern):
            raise ValueError("format ends with an incomplete directive")
        directive = chr(pattern[pos + 1])
        pos += 2
        if directive in "sS":
            out += _as_bytes(next_arg(directive))  # type: ignore[arg-type]
        elif directive == "i":
            out += str(_check_range(next_arg(directive), _INT32, "%i")).encode("ascii")  # type: ignore[arg-type]
        elif directive == "I":
            out += str(_check_range(next_arg(directive), _INT64, "%I")).encode("ascii")  # type: ignore[arg-type]
        elif directive == "u":
            out += str(_check_range(next_arg(directive), _UINT32, "%u")).encode("ascii")  # type: ignore[arg-type]
        elif directive in "UT":
            out += str(_check_range(next_arg(directive), _UINT64, f"%{directive}")).encode("ascii")  # type: ignore[arg-type]
        else:
            out.append(ord(directive))
    return bytes(out)