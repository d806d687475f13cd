import errno
import os
import socket
import struct

import pytest

from kvbench.connection import Connection, ConnectionType, RedisConnectionError
from kvbench.reader import ErrorKind


@pytest.fixture
def listener():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(8)
    yield server.getsockname()
    server.close()


@pytest.fixture
def unix_listener(tmp_path):
    path = str(tmp_path / "s.sock")
    server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    server.bind(path)
    server.listen(8)
    yield path
    server.close()


def _closed_port():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    return port


def test_tcp_connect_blocking(listener):
    host, port = listener
    with Connection() as conn:
        conn.connect_tcp(host, port)
        assert conn.connected
        assert conn.connection_type is ConnectionType.TCP
        assert (conn.host, conn.port) == (host, port)
        assert conn.fd >= 0
        assert conn.sock.getblocking() is True
        assert conn.sock.getsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY) != 0
        assert conn.sock.getpeername() == (host, port)


def test_tcp_connect_nonblocking(listener):
    host, port = listener
    with Connection(blocking=False) as conn:
        conn.connect_tcp(host, port)
        assert conn.connected
        assert conn.sock.getblocking() is False


def test_tcp_connection_refused():
    conn = Connection()
    with pytest.raises(RedisConnectionError) as info:
        conn.connect_tcp("127.0.0.1", _closed_port())
    assert info.value.kind is ErrorKind.IO
    assert info.value.message == os.strerror(errno.ECONNREFUSED)
    assert conn.error is info.value
    assert conn.connected is False
    assert conn.fd == -1


def test_unresolvable_host():
    conn = Connection()
    with pytest.raises(RedisConnectionError) as info:
        conn.connect_tcp("idontexist.test", 6379)
    assert info.value.kind is ErrorKind.OTHER
    assert conn.fd == -1


def test_invalid_timeout_seconds(listener):
    host, port = listener
    conn = Connection()
    with pytest.raises(RedisConnectionError) as info:
        conn.connect_tcp(host, port, timeout=float(((2**63 - 1 - 999) // 1000) + 1))
    assert info.value.kind is ErrorKind.IO
    assert conn.connected is False


def test_negative_timeout_rejected(listener):
    host, port = listener
    with pytest.raises(ValueError):
        Connection().connect_tcp(host, port, timeout=-1)


def test_timeout_is_recorded(listener):
    host, port = listener
    with Connection() as conn:
        conn.connect_tcp(host, port, timeout=2.5)
        assert conn.timeout == 2.5
        assert conn.connected


def test_source_addr_binding(listener):
    host, port = listener
    with Connection(reuse_addr=True) as conn:
        conn.connect_tcp(host, port, source_addr="127.0.0.1")
        assert conn.source_addr == "127.0.0.1"
        assert conn.sock.getsockname()[0] == "127.0.0.1"
        assert conn.sock.getsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR) != 0


def test_unix_connect(unix_listener):
    with Connection() as conn:
        conn.connect_unix(unix_listener)
        assert conn.connected
        assert conn.connection_type is ConnectionType.UNIX
        assert conn.path == unix_listener
        assert conn.sock.getblocking() is True


def test_unix_missing_path(tmp_path):
    conn = Connection()
    with pytest.raises(RedisConnectionError) as info:
        conn.connect_unix(str(tmp_path / "idontexist.sock"))
    assert info.value.kind is ErrorKind.IO
    assert conn.connected is False


def test_set_timeout_applies_to_socket(listener):
    host, port = listener
    with Connection() as conn:
        conn.connect_tcp(host, port)
        conn.set_timeout(1.5)
        raw = conn.sock.getsockopt(socket.SOL_SOCKET, socket.SO_RCVTIMEO, 16)
        assert struct.unpack("@ll", raw) == (1, 500000)


def test_set_timeout_expires_reads(listener):
    host, port = listener
    with Connection() as conn:
        conn.connect_tcp(host, port)
        conn.set_timeout(0.05)
        with pytest.raises(BlockingIOError):
            conn.sock.recv(16)


def test_set_timeout_without_socket():
    conn = Connection()
    with pytest.raises(RedisConnectionError) as info:
        conn.set_timeout(1.0)
    assert info.value.kind is ErrorKind.IO
    assert info.value.message.startswith("setsockopt(SO_RCVTIMEO): ")


def test_keep_alive(listener):
    host, port = listener
    with Connection() as conn:
        conn.connect_tcp(host, port)
        sock = conn.sock
        before = sock.getsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE)
        conn.keep_alive(30)
        after = sock.getsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE)
        assert (bool(before), bool(after)) == (False, True)
        assert conn.connected is True


def test_keep_alive_without_socket():
    with pytest.raises(RedisConnectionError) as info:
        Connection().keep_alive(30)
    assert info.value.kind is ErrorKind.OTHER


def test_check_socket_error_without_socket():
    with pytest.raises(RedisConnectionError) as info:
        Connection().check_socket_error()
    assert info.value.kind is ErrorKind.IO
    assert info.value.message.startswith("getsockopt(SO_ERROR): ")


def test_close_is_idempotent(listener):
    host, port = listener
    conn = Connection()
    conn.connect_tcp(host, port)
    conn.close()
    conn.close()
    assert conn.fd == -1
    assert conn.sock is None
    assert conn.connected is False


def test_context_manager_closes(listener):
    host, port = listener
    with Connection() as conn:
        conn.connect_tcp(host, port)
    assert conn.fd == -1
    assert conn.connected is False


def test_reconnect_reuses_object(listener):
    host, port = listener
    with Connection() as conn:
        conn.connect_tcp(host, port)
        first = conn.sock
        conn.connect_tcp(host, port)
        assert conn.connected
        assert first.fileno() == -1
        assert conn.sock.getpeername() == (host, port)