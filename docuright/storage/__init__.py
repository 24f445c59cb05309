"""Durable key/value storage shared by the session manager and usage meter."""

from docuright.storage.backends import FileBackend, MemoryBackend, RedisBackend, StorageBackend
from docuright.storage.store import SESSION_KEY, USAGE_KEY, PersistentStore

__all__ = [
    "FileBackend",
    "MemoryBackend",
    "PersistentStore",
    "RedisBackend",
    "SESSION_KEY",
    "StorageBackend",
    "USAGE_KEY",
]
