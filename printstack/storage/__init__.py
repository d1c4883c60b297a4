"""Snapshot persistence for PrintStack."""

from printstack.storage.kv import (
    KeyValueStore,
    MemoryStore,
    JsonFileStore,
)
from printstack.storage.adapter import (
    PersistenceAdapter,
    StorageStats,
    RescueResult,
)
from printstack.storage.saver import SnapshotSaver

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "PersistenceAdapter",
    "StorageStats",
    "RescueResult",
    "SnapshotSaver",
]
