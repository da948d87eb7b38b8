from __future__ import annotations

from .base import TrustRepository, TrustWriter
from .locks import KeyedLock
from .memory import MemoryStore
from .sqlite_store import SqliteStore

__all__ = [
    "TrustRepository",
    "TrustWriter",
    "KeyedLock",
    "MemoryStore",
    "SqliteStore",
]
