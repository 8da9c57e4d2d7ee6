from __future__ import annotations

import json
import logging
import math
from collections.abc import Sequence
from typing import Any, Protocol

from sheet_ingest.db.batch_insert import quote_ident
from sheet_ingest.db.datastore import Datastore
from sheet_ingest.models.config_models import IngestionConfig

"""Row insertion strategies.

- DirectStatementInserter: one multi-row INSERT statement per sub-batch,
  executed through the datastore's privileged statement capability
- StructuredInserter: the datastore's standard bulk insert

The capability is probed once per import run (select_inserter).
"""

__all__ = [
    "RowInserter",
    "DirectStatementInserter",
    "StructuredInserter",
    "escape_value",
    "select_inserter",
]

logger = logging.getLogger(__name__)


def _quote(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def _iso_text(value: Any) -> str:
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


def escape_value(value: Any) -> str:
    """Render one value as a SQL literal."""
    if value is None:
        return "NULL"
    # bool は int のサブクラスなので数値より先に判定
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value) if math.isfinite(value) else "NULL"
    if isinstance(value, dict | list):
        payload = json.dumps(value, ensure_ascii=False, default=_iso_text)
        return f"{_quote(payload)}::jsonb"
    if hasattr(value, "isoformat"):
        return _quote(value.isoformat())
    return _quote(str(value))


class RowInserter(Protocol):
    name: str
    batch_size: int

    def insert(self, table: str, rows: Sequence[dict[str, Any]]) -> int: ...


class DirectStatementInserter:
    name = "statement"

    def __init__(self, datastore: Datastore, batch_size: int = 100) -> None:
        self.datastore = datastore
        self.batch_size = batch_size

    @staticmethod
    def build_statement(table: str, rows: Sequence[dict[str, Any]]) -> str:
        columns = list(dict.fromkeys(k for row in rows for k in row))
        column_list = ", ".join(quote_ident(c) for c in columns)
        values = ",\n".join(
            "(" + ", ".join(escape_value(row.get(c)) for c in columns) + ")" for row in rows
        )
        return f"INSERT INTO {quote_ident(table)} ({column_list}) VALUES {values};"

    def insert(self, table: str, rows: Sequence[dict[str, Any]]) -> int:
        if not rows:
            return 0
        self.datastore.execute_statement(self.build_statement(table, rows))
        return len(rows)


class StructuredInserter:
    name = "structured"

    def __init__(self, datastore: Datastore, batch_size: int = 500) -> None:
        self.datastore = datastore
        self.batch_size = batch_size

    def insert(self, table: str, rows: Sequence[dict[str, Any]]) -> int:
        if not rows:
            return 0
        return self.datastore.insert_rows(table, rows)


def select_inserter(datastore: Datastore, cfg: IngestionConfig | None = None) -> RowInserter:
    cfg = cfg or IngestionConfig()
    if datastore.supports_statements():
        inserter: RowInserter = DirectStatementInserter(datastore, cfg.statement_batch_size)
    else:
        inserter = StructuredInserter(datastore, cfg.structured_batch_size)
    logger.info("insert strategy: %s (batch size %d)", inserter.name, inserter.batch_size)
    return inserter
