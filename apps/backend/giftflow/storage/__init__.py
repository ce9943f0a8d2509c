from __future__ import annotations

import os
from functools import lru_cache

from .base import RowStore, StoreError, UniqueViolationError
from .memory import MemoryRowStore
from .postgres import PostgresRowStore


@lru_cache(maxsize=1)
def get_store() -> RowStore:
    backend = (os.getenv("GIFTFLOW_STORE") or "postgres").strip().lower()
    if backend == "memory":
        return MemoryRowStore()
    return PostgresRowStore()


__all__ = [
    "MemoryRowStore",
    "PostgresRowStore",
    "RowStore",
    "StoreError",
    "UniqueViolationError",
    "get_store",
]
