# Shared pytest fixtures
from __future__ import annotations
import io
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pandas as pd  # type: ignore
import pytest

from sheet_ingest.db.datastore import DatastoreError
from sheet_ingest.logging.init import reset_logging


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def _reset_logging():
    reset_logging()
    yield
    reset_logging()


class FakeDatastore:
    """In-memory Datastore.

    - tables: name -> list of inserted rows
    - statements=True: advertises the privileged statement capability
    - fail_calls: 1-based insert call numbers that are rejected
    """

    def __init__(
        self,
        tables: Sequence[str] = ("master_data",),
        *,
        statements: bool = False,
        fail_calls: Sequence[int] = (),
    ) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {t: [] for t in tables}
        self.statements_enabled = statements
        self.fail_calls = set(fail_calls)
        self.insert_calls = 0
        self.executed: list[str] = []
        self.probes = 0
        self.deletes: list[tuple[Any, ...]] = []
        self.closed = False

    def _next_call(self) -> None:
        self.insert_calls += 1
        if self.insert_calls in self.fail_calls:
            raise DatastoreError(f"rejected insert call {self.insert_calls}")

    def table_exists(self, table: str) -> bool:
        return table in self.tables

    def supports_statements(self) -> bool:
        self.probes += 1
        return self.statements_enabled

    def execute_statement(self, sql: str) -> None:
        self._next_call()
        self.executed.append(sql)

    def insert_rows(self, table: str, rows: Sequence[dict[str, Any]]) -> int:
        self._next_call()
        self.tables[table].extend(dict(r) for r in rows)
        return len(rows)

    def delete_all(self, table: str) -> None:
        self.deletes.append(("all", table))
        self.tables[table].clear()

    def delete_period(self, table: str, month: int, year: int) -> None:
        self.deletes.append(("period", table, month, year))
        self.tables[table] = [
            r for r in self.tables[table]
            if not (r["import_month"] == month and r["import_year"] == year)
        ]

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def fake_datastore() -> FakeDatastore:
    return FakeDatastore()


def make_xlsx_bytes(sheets: dict[str, list[list[object]]]) -> bytes:
    """Build an .xlsx in memory (no header row written by pandas)."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for sheet_name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
    return buf.getvalue()


@pytest.fixture()
def xlsx_builder():
    return make_xlsx_bytes


@pytest.fixture()
def make_datastore():
    return FakeDatastore
