from __future__ import annotations

from .base import BaseMemoryStore
from .sqlite_store import MemoryStoreConfig, SQLiteMemoryStore

__all__ = ["BaseMemoryStore", "MemoryStoreConfig", "SQLiteMemoryStore"]
