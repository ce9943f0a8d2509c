from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional
from uuid import UUID

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from .base import TABLES, Row, RowStore, StoreError, UniqueViolationError

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


def _pg_url() -> str:
    url = os.getenv("GIFTFLOW_PG_URL")
    if not url:
        raise RuntimeError("GIFTFLOW_PG_URL not configured")
    return url


def _adapt(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return Jsonb(value)
    return value


def _normalize(row: Row) -> Row:
    out: Row = {}
    for key, value in row.items():
        if isinstance(value, UUID):
            value = str(value)
        elif isinstance(value, datetime):
            value = value.isoformat()
        out[key] = value
    return out


def _where(where: Optional[Row]) -> tuple[sql.Composable, list[Any]]:
    if not where:
        return sql.SQL(""), []
    clauses: list[sql.Composable] = []
    params: list[Any] = []
    for column, value in where.items():
        if value is None:
            clauses.append(sql.SQL("{} is null").format(sql.Identifier(column)))
        else:
            clauses.append(sql.SQL("{} = {}").format(sql.Identifier(column), sql.Placeholder()))
            params.append(_adapt(value))
    return sql.SQL(" where ") + sql.SQL(" and ").join(clauses), params


class PostgresRowStore(RowStore):
    """One autocommit statement per call."""

    def __init__(self, url: str | None = None) -> None:
        self._url = url

    @property
    def url(self) -> str:
        return self._url or _pg_url()

    def _run(self, query: sql.Composable, params: list[Any]) -> list[Row]:
        try:
            with psycopg.connect(self.url, autocommit=True) as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(query, params)
                    rows = cur.fetchall() if cur.description else []
        except psycopg.errors.UniqueViolation as exc:
            raise UniqueViolationError(str(exc)) from exc
        except psycopg.Error as exc:
            raise StoreError(str(exc)) from exc
        return [_normalize(r) for r in rows]

    @staticmethod
    def _table(table: str) -> sql.Identifier:
        if table not in TABLES:
            raise StoreError(f"unknown table '{table}'")
        return sql.Identifier(table)

    def apply_schema(self) -> None:
        statement = SCHEMA_PATH.read_text(encoding="utf-8")
        with psycopg.connect(self.url, autocommit=True) as conn:
            conn.execute(statement)
        logger.info("Applied schema from %s", SCHEMA_PATH.name)

    def insert(self, table: str, values: Row) -> Row:
        return self.insert_many(table, [values])[0]

    def insert_many(self, table: str, rows: list[Row]) -> list[Row]:
        if not rows:
            return []
        columns = list(rows[0].keys())
        if any(list(r.keys()) != columns for r in rows):
            raise StoreError("insert_many rows must share the same columns")
        row_sql = sql.SQL("({})").format(sql.SQL(", ").join([sql.Placeholder()] * len(columns)))
        query = sql.SQL("insert into {} ({}) values {} returning *").format(
            self._table(table),
            sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            sql.SQL(", ").join([row_sql] * len(rows)),
        )
        params = [_adapt(r[c]) for r in rows for c in columns]
        return self._run(query, params)

    def update(self, table: str, values: Row, *, where: Row) -> list[Row]:
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = {}").format(sql.Identifier(c), sql.Placeholder()) for c in values
        )
        where_sql, where_params = _where(where)
        query = sql.SQL("update {} set {}{} returning *").format(self._table(table), assignments, where_sql)
        return self._run(query, [_adapt(v) for v in values.values()] + where_params)

    def delete(self, table: str, *, where: Row) -> int:
        where_sql, params = _where(where)
        query = sql.SQL("delete from {}{} returning id").format(self._table(table), where_sql)
        return len(self._run(query, params))

    def select(
        self,
        table: str,
        *,
        where: Optional[Row] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Row]:
        where_sql, params = _where(where)
        order_sql = sql.SQL("")
        if order_by:
            order_sql = sql.SQL(" order by {} {}").format(
                sql.Identifier(order_by), sql.SQL("desc" if descending else "asc")
            )
        query = sql.SQL("select * from {}{}{}").format(self._table(table), where_sql, order_sql)
        return self._run(query, params)
