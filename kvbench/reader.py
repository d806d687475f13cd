"""Incremental parser for the Redis reply protocol."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

MAX_BUF = 16 * 1024
"""Default amount of consumed buffer kept before it is released."""

_MAX_DEPTH = 8
_ERRSTR_SIZE = 128
_DISCARD_AT = 1024


class ErrorKind(enum.IntEnum):
    """Kinds of failure a reader or connection can report."""

    IO = 1
    OTHER = 2
    EOF = 3
    PROTOCOL = 4
    OOM = 5


class ReaderError(Exception):
    """Raised when the reader meets input it cannot parse."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class Status(bytes):
    """A status reply, such as ``OK`` or ``PONG``."""

    def __repr__(self) -> str:
        return f"Status({bytes(self)!r})"


class ErrorReply(bytes):
    """An error reply sent by the server."""

    def __repr__(self) -> str:
        return f"ErrorReply({bytes(self)!r})"


class _ItemType(enum.Enum):
    ERROR = b"-"[0]
    STATUS = b"+"[0]
    INTEGER = b":"[0]
    STRING = b"$"[0]
    ARRAY = b"*"[0]


_TYPE_BYTES = {item.value: item for item in _ItemType}


@dataclass
class _Task:
    index: int
    type: _ItemType | None = None
    elements: int = -1
    container: list[Any] = field(default_factory=list)


class _NoReply:
    __slots__ = ()

    def __repr__(self) -> str:
        return "NO_REPLY"

    def __bool__(self) -> bool:
        return False


def _describe_byte(byte: int) -> str:
    special = {
        ord("\n"): '"\\n"',
        ord("\r"): '"\\r"',
        ord("\t"): '"\\t"',
        ord("\a"): '"\\a"',
        ord("\b"): '"\\b"',
    }
    if byte in (ord("\\"), ord('"')):
        return f'"\\{chr(byte)}"'
    if byte in special:
        return special[byte]
    if 0x20 <= byte <= 0x7E:
        return f'"{chr(byte)}"'
    return f'"\\x{byte:02x}"'


def _read_long_long(data: bytes) -> int:
    """Parse a signed decimal; any unexpected byte gives -1."""
    digits = data.split(b"\r", 1)[0]
    sign = 1
    if digits[:1] == b"-":
        sign, digits = -1, digits[1:]
    elif digits[:1] == b"+":
        digits = digits[1:]
    value = 0
    for byte in digits:
        if not 0x30 <= byte <= 0x39:
            return -1
        value = value * 10 + (byte - 0x30)
    return sign * value


class ReplyReader:
    """Parse replies from bytes fed in arbitrary chunks.

    Bulk strings come back as ``bytes``, integers as ``int``, nil as
    ``None``, arrays as ``list``, and status and error lines as
    :class:`Status` and :class:`ErrorReply`. :meth:`get_reply` returns
    :attr:`NO_REPLY` while a reply is still incomplete.
    """

    NO_REPLY: Any = _NoReply()

    def __init__(self, max_buf: int = MAX_BUF) -> None:
        if max_buf < 0:
            raise ValueError("max_buf must not be negative")
        self.max_buf = max_buf
        self._buf = bytearray()
        self._pos = 0
        self._stack: list[_Task] = []
        self._reply: Any = None
        self._error: tuple[ErrorKind, str] | None = None

    @property
    def error(self) -> ReaderError | None:
        """The error that stopped the reader, or ``None``."""
        return ReaderError(*self._error) if self._error else None

    def _raise_error(self) -> None:
        assert self._error is not None
        raise ReaderError(*self._error)

    def feed(self, data: bytes) -> None:
        """Append ``data`` to the input buffer."""
        if self._error:
            self._raise_error()
        if not data:
            return
        if (
            self.max_buf
            and self._pos == len(self._buf)
            and len(self._buf) > self.max_buf
        ):
            self._buf.clear()
            self._pos = 0
        self._buf += data

    def get_reply(self) -> Any:
        """Return the next complete reply, or :attr:`NO_REPLY`."""
        if self._error:
            self._raise_error()
        if not self._buf:
            return self.NO_REPLY
        if not self._stack:
            self._stack.append(_Task(index=-1))
        while self._stack and self._process_item():
            pass
        if self._error:
            self._raise_error()
        if self._pos >= _DISCARD_AT:
            del self._buf[: self._pos]
            self._pos = 0
        if self._stack:
            return self.NO_REPLY
        reply, self._reply = self._reply, None
        return reply

    def _set_error(self, kind: ErrorKind, message: str) -> None:
        self._reply = None
        self._buf.clear()
        self._pos = 0
        self._stack.clear()
        self._error = (kind, message[: _ERRSTR_SIZE - 1])

    def _read_line(self) -> bytes | None:
        end = self._buf.find(b"\r\n", self._pos)
        if end < 0:
            return None
        line = bytes(self._buf[self._pos:end])
        self._pos = end + 2
        return line

    def _attach(self, obj: Any) -> None:
        if len(self._stack) == 1:
            self._reply = obj
        else:
            self._stack[-2].container.append(obj)

    def _move_to_next_task(self) -> None:
        while self._stack:
            if len(self._stack) == 1:
                self._stack.pop()
                return
            cur, prv = self._stack[-1], self._stack[-2]
            if cur.index == prv.elements - 1:
                self._stack.pop()
            else:
                cur.type = None
                cur.elements = -1
                cur.index += 1
                return

    def _process_item(self) -> bool:
        cur = self._stack[-1]
        if cur.type is None:
            if self._pos >= len(self._buf):
                return False
            byte = self._buf[self._pos]
            self._pos += 1
            item_type = _TYPE_BYTES.get(byte)
            if item_type is None:
                self._set_error(
                    ErrorKind.PROTOCOL,
                    f"Protocol error, got {_describe_byte(byte)} as reply type byte",
                )
                return False
            cur.type = item_type
        if cur.type is _ItemType.STRING:
            return self._process_bulk_item()
        if cur.type is _ItemType.ARRAY:
            return self._process_multi_bulk_item()
        return self._process_line_item(cur.type)

    def _process_line_item(self, item_type: _ItemType) -> bool:
        line = self._read_line()
        if line is None:
            return False
        if item_type is _ItemType.INTEGER:
            obj: Any = _read_long_long(line)
        elif item_type is _ItemType.ERROR:
            obj = ErrorReply(line)
        else:
            obj = Status(line)
        self._attach(obj)
        self._move_to_next_task()
        return True

    def _process_bulk_item(self) -> bool:
        end = self._buf.find(b"\r\n", self._pos)
        if end < 0:
            return False
        consumed = end - self._pos + 2
        length = _read_long_long(bytes(self._buf[self._pos:end + 1]))
        if length < 0:
            obj = None
        else:
            consumed += length + 2
            if self._pos + consumed > len(self._buf):
                return False
            obj = bytes(self._buf[end + 2:end + 2 + length])
        self._pos += consumed
        self._attach(obj)
        self._move_to_next_task()
        return True

    def _process_multi_bulk_item(self) -> bool:
        if len(self._stack) - 1 == _MAX_DEPTH:
            self._set_error(
                ErrorKind.PROTOCOL,
                "No support for nested multi bulk replies with depth > 7",
            )
            return False
        line = self._read_line()
        if line is None:
            return False
        elements = _read_long_long(line)
        if elements == -1:
            self._attach(None)
            self._move_to_next_task()
            return True
        items: list[Any] = []
        self._attach(items)
        if elements > 0:
            cur = self._stack[-1]
            cur.elements = elements
            cur.container = items
            self._stack.append(_Task(index=0))
        else:
            self._move_to_next_task()
        return True