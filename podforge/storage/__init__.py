"""Storage adapters for drafts, production records and collections."""

from podforge.storage.base import RECORD_MODELS, StorageAdapter
from podforge.storage.memory import MemoryStorageAdapter
from podforge.storage.sql import SQLStorageAdapter

__all__ = ["RECORD_MODELS", "StorageAdapter", "MemoryStorageAdapter", "SQLStorageAdapter"]
