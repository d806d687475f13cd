"""Opening TCP and Unix-domain connections to a Redis server."""

from __future__ import annotations

import enum
import errno
import math
import os
import selectors
import socket
import struct
import sys
from typing import Any

from kvbench.reader import ErrorKind

CONNECT_RETRIES = 10
"""How often a connect is retried when the local address is unavailable."""

_LONG_MAX = (1 << 63) - 1
_MAX_SECONDS = (_LONG_MAX - 999) // 1000
_INT_MAX = (1 << 31) - 1
_TIMEVAL = struct.Struct("@ll")


class ConnectionType(enum.Enum):
    """How a connection reaches the server."""

    TCP = "tcp"
    UNIX = "unix"


class RedisConnectionError(Exception):
    """Raised when a connection cannot be opened or configured."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


def _code(exc: OSError) -> int:
    return exc.errno if exc.errno is not None else errno.EIO


def _check_nonnegative(timeout: float) -> None:
    if math.isnan(timeout) or timeout < 0:
        raise ValueError("timeout must be a non-negative number of seconds")


class Connection:
    """A socket connection that reports failures the way the client expects.

    With ``blocking`` true the socket is left in blocking mode once
    connected; otherwise a connect still in progress counts as success.
    ``reuse_addr`` sets SO_REUSEADDR on a bound source address and retries
    a connect that fails because the local address is unavailable.
    """

    def __init__(self, blocking: bool = True, reuse_addr: bool = False) -> None:
        self.blocking = blocking
        self.reuse_addr = reuse_addr
        self.connection_type: ConnectionType | None = None
        self.host: str | None = None
        self.port: int | None = None
        self.source_addr: str | None = None
        self.path: str | None = None
        self.timeout: float | None = None
        self.connected = False
        self.error: RedisConnectionError | None = None
        self._sock: socket.socket | None = None

    @property
    def sock(self) -> socket.socket | None:
        """The underlying socket, or ``None`` when closed."""
        return self._sock

    @property
    def fd(self) -> int:
        """The socket's file descriptor, or -1 when closed."""
        return self._sock.fileno() if self._sock is not None else -1

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the socket; closing twice is harmless."""
        self._close_socket()
        self.connected = False

    def _close_socket(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def _fail(self, kind: ErrorKind, message: str) -> RedisConnectionError:
        err = RedisConnectionError(kind, message)
        self.error = err
        return err

    def _errno_error(self, code: int, prefix: str | None = None) -> RedisConnectionError:
        message = os.strerror(code)
        if prefix is not None:
            message = f"{prefix}: {message}"
        return self._fail(ErrorKind.IO, message)

    def _require_socket(self, prefix: str | None) -> socket.socket:
        if self._sock is None:
            raise self._errno_error(errno.EBADF, prefix)
        return self._sock

    def _wait_seconds(self, timeout: float | None) -> float | None:
        if timeout is None:
            return None
        _check_nonnegative(timeout)
        if timeout > _MAX_SECONDS:
            self._close_socket()
            raise self._errno_error(errno.EINVAL)
        msec = min(math.ceil(timeout * 1000), _INT_MAX)
        return msec / 1000

    def _set_blocking(self, blocking: bool) -> None:
        sock = self._require_socket("fcntl(F_SETFL)")
        try:
            sock.setblocking(blocking)
        except OSError as exc:
            self._close_socket()
            raise self._errno_error(_code(exc), "fcntl(F_SETFL)") from exc

    def _wait_ready(self, code: int, wait: float | None) -> None:
        sock = self._require_socket(None)
        if code != errno.EINPROGRESS:
            self._close_socket()
            raise self._errno_error(code)
        with selectors.DefaultSelector() as selector:
            selector.register(sock, selectors.EVENT_WRITE)
            try:
                ready = selector.select(wait)
            except OSError as exc:
                self._close_socket()
                raise self._errno_error(_code(exc), "poll(2)") from exc
        if not ready:
            self._close_socket()
            raise self._errno_error(errno.ETIMEDOUT)
        try:
            self.check_socket_error()
        except RedisConnectionError:
            self._close_socket()
            raise

    def _resolve(self, host: str, port: int) -> tuple[int, list[Any]]:
        try:
            return socket.AF_INET, socket.getaddrinfo(
                host, port, socket.AF_INET, socket.SOCK_STREAM
            )
        except socket.gaierror:
            pass
        try:
            return socket.AF_INET6, socket.getaddrinfo(
                host, port, socket.AF_INET6, socket.SOCK_STREAM
            )
        except socket.gaierror as exc:
            raise self._fail(ErrorKind.OTHER, exc.strerror or str(exc)) from exc

    def _bind_source(self, sock: socket.socket, family: int, source_addr: str) -> None:
        try:
            candidates = socket.getaddrinfo(source_addr, None, family, socket.SOCK_STREAM)
        except socket.gaierror as exc:
            self._close_socket()
            raise self._fail(
                ErrorKind.OTHER, f"Can't get addr: {exc.strerror or exc}"
            ) from exc
        if self.reuse_addr:
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            except OSError as exc:
                self._close_socket()
                raise self._errno_error(_code(exc)) from exc
        last = errno.EADDRNOTAVAIL
        for *_, addr in candidates:
            try:
                sock.bind(addr)
                return
            except OSError as exc:
                last = _code(exc)
        self._close_socket()
        raise self._fail(ErrorKind.OTHER, f"Can't bind socket: {os.strerror(last)}")

    def _attempt(
        self, info: Any, family: int, wait: float | None
    ) -> tuple[bool, int]:
        """Try one resolved address; (True, 0) on success, (False, errno) to move on."""
        sock_family, socktype, proto, _, addr = info
        reuses = 0
        while True:
            try:
                sock = socket.socket(sock_family, socktype, proto)
            except OSError as exc:
                return False, _code(exc)
            self._sock = sock
            self._set_blocking(False)
            if self.source_addr is not None:
                self._bind_source(sock, family, self.source_addr)
            code = sock.connect_ex(addr)
            if code == 0:
                return True, 0
            if code == errno.EHOSTUNREACH:
                self._close_socket()
                return False, code
            if code == errno.EINPROGRESS and not self.blocking:
                return True, 0
            if code == errno.EADDRNOTAVAIL and self.reuse_addr:
                self._close_socket()
                reuses += 1
                if reuses >= CONNECT_RETRIES:
                    raise self._errno_error(code)
                continue
            self._wait_ready(code, wait)
            return True, 0

    def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        source_addr: str | None = None,
    ) -> None:
        """Connect to ``host``:``port``, trying IPv4 before IPv6.

        ``timeout`` in seconds limits the wait for the connect to finish;
        ``source_addr`` binds the local end first.
        """
        self.close()
        self.connection_type = ConnectionType.TCP
        self.host = host
        self.port = port
        self.timeout = timeout
        self.source_addr = source_addr
        wait = self._wait_seconds(timeout)
        family, infos = self._resolve(host, port)
        last_error = errno.ENOENT
        for info in infos:
            ok, code = self._attempt(info, family, wait)
            if ok:
                break
            last_error = code
        else:
            raise self._fail(
                ErrorKind.OTHER, f"Can't create socket: {os.strerror(last_error)}"
            )
        if self.blocking:
            self._set_blocking(True)
        sock = self._require_socket("setsockopt(TCP_NODELAY)")
        try:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError as exc:
            self._close_socket()
            raise self._errno_error(_code(exc), "setsockopt(TCP_NODELAY)") from exc
        self.connected = True

    def connect_unix(self, path: str | os.PathLike[str], timeout: float | None = None) -> None:
        """Connect to the Unix-domain socket at ``path``."""
        self.close()
        family = getattr(socket, "AF_UNIX", None)
        if family is None:
            raise self._fail(ErrorKind.OTHER, "Unix domain sockets are not supported")
        wait = self._wait_seconds(timeout)
        try:
            sock = socket.socket(family, socket.SOCK_STREAM)
        except OSError as exc:
            raise self._errno_error(_code(exc)) from exc
        self._sock = sock
        self._set_blocking(False)
        self.connection_type = ConnectionType.UNIX
        self.path = os.fspath(path)
        self.timeout = timeout
        try:
            code = sock.connect_ex(self.path)
        except OSError as exc:
            self._close_socket()
            raise self._errno_error(exc.errno or errno.EINVAL) from exc
        if code and not (code == errno.EINPROGRESS and not self.blocking):
            self._wait_ready(code, wait)
        if self.blocking:
            self._set_blocking(True)
        self.connected = True

    def set_timeout(self, timeout: float) -> None:
        """Set the socket's send and receive timeouts, in seconds."""
        label = "setsockopt(SO_RCVTIMEO)"
        sock = self._require_socket(label)
        _check_nonnegative(timeout)
        if not math.isfinite(timeout):
            raise self._errno_error(errno.EINVAL, label)
        seconds = int(timeout)
        micros = round((timeout - seconds) * 1_000_000)
        if micros >= 1_000_000:
            seconds, micros = seconds + 1, 0
        try:
            packed = _TIMEVAL.pack(seconds, micros)
        except struct.error as exc:
            raise self._errno_error(errno.EINVAL, label) from exc
        for option, name in (
            (socket.SO_RCVTIMEO, "setsockopt(SO_RCVTIMEO)"),
            (socket.SO_SNDTIMEO, "setsockopt(SO_SNDTIMEO)"),
        ):
            try:
                sock.setsockopt(socket.SOL_SOCKET, option, packed)
            except OSError as exc:
                raise self._errno_error(_code(exc), name) from exc

    def keep_alive(self, interval: int) -> None:
        """Turn on TCP keep-alive probes every ``interval`` seconds."""
        if self._sock is None:
            raise self._fail(ErrorKind.OTHER, os.strerror(errno.EBADF))
        sock = self._sock
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            if sys.platform == "darwin" and hasattr(socket, "TCP_KEEPALIVE"):
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, interval)
            elif all(
                hasattr(socket, name)
                for name in ("TCP_KEEPIDLE", "TCP_KEEPINTVL", "TCP_KEEPCNT")
            ):
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, interval)
                sock.setsockopt(
                    socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, max(interval // 3, 1)
                )
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPCNT, 3)
        except OSError as exc:
            raise self._fail(ErrorKind.OTHER, os.strerror(_code(exc))) from exc

    def check_socket_error(self) -> None:
        """Raise if the socket has a pending error; the error is cleared."""
        sock = self._require_socket("getsockopt(SO_ERROR)")
        try:
            err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        except OSError as exc:
            raise self._errno_error(_code(exc), "getsockopt(SO_ERROR)") from exc
        if err:
            raise self._errno_error(err)