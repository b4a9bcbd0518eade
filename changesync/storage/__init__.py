"""Record stores with change tracking."""

from changesync.storage.base import RecordStore, changes_since
from changesync.storage.file_store import JsonFileRecordStore, StoreSnapshot
from changesync.storage.memory_store import InMemoryRecordStore

__all__ = [
    "RecordStore",
    "InMemoryRecordStore",
    "JsonFileRecordStore",
    "StoreSnapshot",
    "changes_since",
]
