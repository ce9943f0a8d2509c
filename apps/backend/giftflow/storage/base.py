from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

TABLES = ("projects", "nodes", "sessions", "assets")

Row = dict[str, Any]


class StoreError(RuntimeError):
    """A single row operation failed."""


class UniqueViolationError(StoreError):
    pass


class RowStore(ABC):
    """Row-at-a-time access to the backing tables.

    No multi-row transactions: every call is its own atomic statement. The
    ``nodes`` table enforces uniqueness of ``(project_id, order_index)``.
    """

    @abstractmethod
    def insert(self, table: str, values: Row) -> Row: ...

    @abstractmethod
    def insert_many(self, table: str, rows: list[Row]) -> list[Row]: ...

    @abstractmethod
    def update(self, table: str, values: Row, *, where: Row) -> list[Row]: ...

    @abstractmethod
    def delete(self, table: str, *, where: Row) -> int: ...

    @abstractmethod
    def select(
        self,
        table: str,
        *,
        where: Optional[Row] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Row]: ...

    def select_one(self, table: str, *, where: Row) -> Optional[Row]:
        rows = self.select(table, where=where)
        return rows[0] if rows else None
