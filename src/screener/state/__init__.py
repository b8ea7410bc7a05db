"""Result store interfaces and implementations."""

from .memory_store import MemoryResultStore
from .sqlite_store import SqliteResultStore
from .store import ResultStore

__all__ = ["ResultStore", "MemoryResultStore", "SqliteResultStore"]
