"""Storage - key/value blob persistence for memory, patterns and profile

Components:
    base.py: PersistentStore interface and StorageError
    memory_backend.py: process-local dict store (tests, ephemeral runs)
    sqlite_backend.py: single-table SQLite store (default)
    codec.py: JSON encoding of persisted records
"""

from .base import PersistentStore, StorageError
from .codec import decode_list, decode_record, encode_list, encode_record
from .memory_backend import InMemoryStore
from .sqlite_backend import SqliteStore

__all__ = [
    "InMemoryStore",
    "PersistentStore",
    "SqliteStore",
    "StorageError",
    "decode_list",
    "decode_record",
    "encode_list",
    "encode_record",
]
