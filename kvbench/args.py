"""Quoting and splitting of command-line style argument strings."""

from __future__ import annotations

_HEX_DIGITS = frozenset(b"0123456789abcdefABCDEF")
_SPACE = frozenset(b" \t\n\v\f\r")
_TOKEN_END = frozenset(b" \n\r\t")
_ESCAPES = {
    ord("n"): ord("\n"),
    ord("r"): ord("\r"),
    ord("t"): ord("\t"),
    ord("b"): ord("\b"),
    ord("a"): ord("\a"),
}
_REPR_ESCAPES = {
    ord("\\"): b"\\\\",
    ord('"'): b'\\"',
    ord("\n"): b"\\n",
    ord("\r"): b"\\r",
    ord("\t"): b"\\t",
    ord("\a"): b"\\a",
    ord("\b"): b"\\b",
}


def _as_bytes(value: str | bytes | bytearray | memoryview) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"expected str or bytes, got {type(value).__name__}")


def _as_byte(c: str | bytes | int) -> int:
    if isinstance(c, int) and not isinstance(c, bool):
        return c
    data = _as_bytes(c)  # type: ignore[arg-type]
    if len(data) != 1:
        raise ValueError("expected a single character")
    return data[0]


def is_hex_digit(c: str | bytes | int) -> bool:
    """True if ``c`` is one of 0-9, a-f or A-F."""
    return _as_byte(c) in _HEX_DIGITS


def hex_digit_to_int(c: str | bytes | int) -> int:
    """Value 0-15 of a hex digit; anything else gives 0."""
    byte = _as_byte(c)
    if byte not in _HEX_DIGITS:
        return 0
    return int(chr(byte), 16)


def cat_repr(data: str | bytes) -> bytes:
    """Quote ``data``, escaping non-printable bytes.

    The result can be read back by :func:`split_args`.
    """
    out = bytearray(b'"')
    for byte in _as_bytes(data):
        escaped = _REPR_ESCAPES.get(byte)
        if escaped is not None:
            out += escaped
        elif 0x20 <= byte <= 0x7E:
            out.append(byte)
        else:
            out += b"\\x%02x" % byte
    out += b'"'
    return bytes(out)


def split_args(line: str | bytes) -> list[bytes]:
    """Split a line into arguments, honouring quotes and escapes.

    Double-quoted arguments understand ``\\n``, ``\\r``, ``\\t``, ``\\b``,
    ``\\a`` and ``\\xHH``; single-quoted ones understand only ``\\'``.
    Raises ValueError on unbalanced quotes or a closing quote that is not
    followed by a space or the end of the line.
    """
    data = _as_bytes(line).split(b"\0", 1)[0]
    size = len(data)

    def at(i: int) -> int:
        return data[i] if i < size else 0

    args: list[bytes] = []
    p = 0
    while True:
        while p < size and data[p] in _SPACE:
            p += 1
        if p >= size:
            return args

        current = bytearray()
        in_double = in_single = done = False
        while not done:
            c = at(p)
            if in_double:
                if (
                    c == ord("\\")
                    and at(p + 1) == ord("x")
                    and at(p + 2) in _HEX_DIGITS
                    and at(p + 3) in _HEX_DIGITS
                ):
                    current.append(
                        hex_digit_to_int(at(p + 2)) * 16 + hex_digit_to_int(at(p + 3))
                    )
                    p += 3
                elif c == ord("\\") and at(p + 1):
                    p += 1
                    escaped = at(p)
                    current.append(_ESCAPES.get(escaped, escaped))
                elif c == ord('"'):
                    following = at(p + 1)
                    if following and following not in _SPACE:
                        raise ValueError("closing quote must be followed by a space")
                    done = True
                elif not c:
                    raise ValueError("unterminated double quotes")
                else:
                    current.append(c)
            elif in_single:
                if c == ord("\\") and at(p + 1) == ord("'"):
                    p += 1
                    current.append(ord("'"))
                elif c == ord("'"):
                    following = at(p + 1)
                    if following and following not in _SPACE:
                        raise ValueError("closing quote must be followed by a space")
                    done = True
                elif not c:
                    raise ValueError("unterminated single quotes")
                else:
                    current.append(c)
            else:
                if not c or c in _TOKEN_END:
                    done = True
                elif c == ord('"'):
                    in_double = True
                elif c == ord("'"):
                    in_single = True
                else:
                    current.append(c)
            if at(p):
                p += 1
        args.append(bytes(current))