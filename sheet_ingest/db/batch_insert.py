from __future__ import annotations

import json
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import psycopg2
from psycopg2.extras import Json, execute_values

"""Multi-row INSERT of record dicts for direct PostgreSQL targets.

One sub-batch becomes one ``execute_values`` call. The column list is the
union of the record keys in first-seen order; a record missing a column
inserts NULL there. dict / list values (raw_data) are passed as jsonb.
"""

__all__ = [
    "BatchInsertError",
    "InsertResult",
    "quote_ident",
    "adapt_value",
    "record_columns",
    "insert_records",
]


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    columns: tuple[str, ...]
    elapsed_seconds: float


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _iso_default(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    raise TypeError(f"not JSON serializable: {type(value).__name__}")


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=_iso_default)


def adapt_value(value: Any) -> Any:
    if isinstance(value, dict | list):
        return Json(value, dumps=_dumps)
    return value


def record_columns(rows: Sequence[dict[str, Any]]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(key for row in rows for key in row))


def insert_records(cursor: Any, table: str, rows: Sequence[dict[str, Any]]) -> InsertResult:
    """Insert ``rows`` into ``table`` with a single execute_values page.

    Raises:
        BatchInsertError: the server rejected the statement (message stripped).
    """
    columns = record_columns(rows)
    if not rows:
        return InsertResult(0, columns, 0.0)

    values = [tuple(adapt_value(row.get(c)) for c in columns) for row in rows]
    sql = "INSERT INTO {} ({}) VALUES %s".format(
        quote_ident(table), ",".join(quote_ident(c) for c in columns)
    )
    started = time.perf_counter()
    try:
        execute_values(cursor, sql, values, page_size=len(values))
    except psycopg2.Error as e:
        raise BatchInsertError(str(e).strip()) from e
    return InsertResult(len(values), columns, time.perf_counter() - started)
