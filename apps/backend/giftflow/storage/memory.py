from __future__ import annotations

import copy
import threading
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from .base import TABLES, Row, RowStore, StoreError, UniqueViolationError


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


_DEFAULTS: dict[str, dict[str, Any]] = {
    "projects": {"description": None, "published": False, "share_slug": None},
    "nodes": {},
    "sessions": {"answers": [], "completed": False, "completed_at": None},
    "assets": {"project_id": None, "width": None, "height": None, "alt_text": None, "attribution": None},
}

_TIMESTAMPS: dict[str, tuple[str, ...]] = {
    "projects": ("created_at", "updated_at"),
    "nodes": ("created_at", "updated_at"),
    "sessions": ("started_at", "updated_at"),
    "assets": ("created_at",),
}

# NULLs never collide, as in Postgres.
_UNIQUE: dict[str, list[tuple[str, ...]]] = {
    "projects": [("share_slug",)],
    "nodes": [("project_id", "order_index")],
}

_CASCADE: dict[str, list[tuple[str, str, str]]] = {
    "projects": [("nodes", "project_id", "delete"), ("sessions", "project_id", "delete"), ("assets", "project_id", "set_null")],
}


class MemoryRowStore(RowStore):
    """In-process store with the same constraints as the Postgres schema.

    Every successful write is appended to ``writes`` as ``(op, table, row)``.
    """

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, Row]] = {name: {} for name in TABLES}
        self._lock = threading.RLock()
        self.writes: list[tuple[str, str, Row]] = []

    def _table(self, table: str) -> dict[str, Row]:
        if table not in self._tables:
            raise StoreError(f"unknown table '{table}'")
        return self._tables[table]

    @staticmethod
    def _matches(row: Row, where: Optional[Row]) -> bool:
        return all(row.get(k) == v for k, v in (where or {}).items())

    def _check_unique(self, table: str, candidate: Row, ignore_ids: set[str]) -> None:
        for columns in _UNIQUE.get(table, []):
            key = tuple(candidate.get(c) for c in columns)
            if any(v is None for v in key):
                continue
            for row in self._tables[table].values():
                if row["id"] in ignore_ids:
                    continue
                if tuple(row.get(c) for c in columns) == key:
                    raise UniqueViolationError(
                        f"duplicate key value violates unique constraint on {table}({', '.join(columns)}): {key}"
                    )

    def _new_row(self, table: str, values: Row) -> Row:
        row = copy.deepcopy(_DEFAULTS.get(table, {}))
        now = _now_iso()
        for column in _TIMESTAMPS.get(table, ()):
            row[column] = now
        row["id"] = str(uuid4())
        row.update(copy.deepcopy(values))
        return row

    def insert(self, table: str, values: Row) -> Row:
        return self.insert_many(table, [values])[0]

    def insert_many(self, table: str, rows: list[Row]) -> list[Row]:
        with self._lock:
            data = self._table(table)
            staged = [self._new_row(table, values) for values in rows]
            for i, row in enumerate(staged):
                self._check_unique(table, row, ignore_ids=set())
                for other in staged[:i]:
                    if any(
                        all(row.get(c) is not None and row.get(c) == other.get(c) for c in columns)
                        for columns in _UNIQUE.get(table, [])
                    ):
                        raise UniqueViolationError(f"duplicate key value in batch insert into {table}")
            for row in staged:
                data[row["id"]] = row
                self.writes.append(("insert", table, copy.deepcopy(row)))
            return copy.deepcopy(staged)

    def update(self, table: str, values: Row, *, where: Row) -> list[Row]:
        with self._lock:
            data = self._table(table)
            targets = [row for row in data.values() if self._matches(row, where)]
            updated = [{**row, **copy.deepcopy(values)} for row in targets]
            ids = {row["id"] for row in targets}
            for row in updated:
                self._check_unique(table, row, ignore_ids=ids)
            for row in updated:
                data[row["id"]] = row
                self.writes.append(("update", table, copy.deepcopy(row)))
            return copy.deepcopy(updated)

    def delete(self, table: str, *, where: Row) -> int:
        with self._lock:
            data = self._table(table)
            doomed = [row for row in data.values() if self._matches(row, where)]
            for row in doomed:
                del data[row["id"]]
                self.writes.append(("delete", table, copy.deepcopy(row)))
                for child, column, action in _CASCADE.get(table, []):
                    children = self._tables[child]
                    for child_row in [r for r in children.values() if r.get(column) == row["id"]]:
                        if action == "delete":
                            del children[child_row["id"]]
                        else:
                            child_row[column] = None
            return len(doomed)

    def select(
        self,
        table: str,
        *,
        where: Optional[Row] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Row]:
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._table(table).values() if self._matches(r, where)]
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=descending)
        return rows
