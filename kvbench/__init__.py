"""SDBM-hashed strings, byte-string helpers, argument splitting, a RESP reply reader and socket connection setup."""

__version__ = "0.1.0"
__all__ = ["args", "connection", "hashstring", "reader", "sds"]