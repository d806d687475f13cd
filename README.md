# kvbench

Small, dependency-free building blocks for talking to a key-value server
from Python:

- `kvbench.hashstring` — `HashString`, an immutable string carrying its
  precomputed 64-bit SDBM hash, and the `sdbm_hash` function.
- `kvbench.sds` — byte-string helpers: inclusive ranges, trimming,
  comparison, splitting, joining, zero padding, integer formatting and a
  small format language (`cat_fmt`).
- `kvbench.args` — splitting a command line into arguments with quoting and
  escapes (`split_args`), and the quoted, escaped form that reads back
  (`cat_repr`).
- `kvbench.reader` — `ReplyReader`, an incremental parser for the Redis
  serialization protocol (RESP).
- `kvbench.connection` — `Connection`, which opens TCP or Unix-domain
  sockets with connect timeouts, send/receive timeouts, keep-alive and
  source-address binding.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Examples

### Hashed strings

```python
from kvbench.hashstring import HashString, sdbm_hash

key = HashString("user1")
key.value                     # "user1"
key.sdbm == sdbm_hash("user1")  # True
len(HashString("é"))          # 2: the length of the UTF-8 encoding
key == HashString("user1")    # True
```

`HashString` objects are hashable, so they can be used as dictionary keys.

### Byte strings

```python
from kvbench import sds

sds.sds_range(b"ciao", 1, -1)         # b"iao"
sds.sds_trim(b"xxciaoyyy", "xy")      # b"ciao"
sds.sds_cmp(b"foo", b"foa")           # 1
sds.split_len(b"foo_-_bar", "_-_")    # [b"foo", b"bar"]
sds.join([b"a", b"b"], ",")           # b"a,b"
sds.cat_fmt(b"n=", "%i %s", 5, "x")   # b"n=5 x"
```

`cat_fmt` understands `%s`/`%S` (strings), `%i`/`%I` (32- and 64-bit
signed integers) and `%u`/`%U`/`%T` (32- and 64-bit unsigned integers);
`%` followed by any other character gives that character. Integers out of
range raise `OverflowError`.

### Splitting command lines

```python
from kvbench.args import split_args, cat_repr

split_args('set key "hello\\nworld"')   # [b"set", b"key", b"hello\nworld"]
cat_repr(b"\a\n\x00foo\r")              # b'"\\a\\n\\x00foo\\r"'
```

`split_args` raises `ValueError` on unbalanced quotes, or on a closing quote
that is followed by something other than whitespace.

### Parsing replies

```python
from kvbench.reader import ReplyReader

reader = ReplyReader()
reader.feed(b"*2\r\n$5\r\nhello\r\n:4")
reader.get_reply() is ReplyReader.NO_REPLY   # True: not complete yet
reader.feed(b"2\r\n")
reader.get_reply()                           # [b"hello", 42]
```

Bulk strings come back as `bytes`, integers as `int`, nil as `None` and
arrays as `list`; status and error lines come back as `Status` and
`ErrorReply`, both subclasses of `bytes`. A malformed stream raises
`ReaderError`, whose `kind` is an `ErrorKind`; once that happens the reader
stays in the error state, every later `feed` or `get_reply` raises again,
and `reader.error` holds the error. Arrays nested deeper than seven levels
are refused.

### Connecting

```python
from kvbench.connection import Connection, RedisConnectionError

with Connection(blocking=True, reuse_addr=False) as conn:
    conn.connect_tcp("127.0.0.1", 6379, timeout=1.5, source_addr=None)
    conn.set_timeout(0.5)
    conn.keep_alive(15)
    # conn.sock is the connected socket
```

`connect_tcp` tries IPv4 before IPv6; `connect_unix(path, timeout)` opens a
Unix-domain socket. Failures raise `RedisConnectionError`, which carries an
`ErrorKind` and a message and is also kept in `conn.error`.

## What the package does not do

There is no client here that sends commands and collects replies: a
`Connection` only opens and configures the socket, and a `ReplyReader` only
parses bytes you hand it. Moving bytes between the two is up to the caller.
The package also has no key-value table or storage of its own, and no
command-line program.