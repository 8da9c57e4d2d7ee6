from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from typing import Any, Protocol

import psycopg2
import requests

from sheet_ingest.db.batch_insert import BatchInsertError, insert_records, quote_ident
from sheet_ingest.errors import ConfigurationError
from sheet_ingest.models.config_models import ResolvedCredentials

"""Target datastore adapters.

Two kinds of target:
- RestDatastore: PostgREST / Supabase REST API over requests
- PostgresDatastore: direct PostgreSQL connection over psycopg2

Both expose the same small surface used by the ingestion engine (Datastore
protocol). Operation failures raise DatastoreError; unreachable or rejected
credentials raise ConfigurationError.
"""

__all__ = [
    "MISSING_TABLE_CODES",
    "NIL_UUID",
    "DatastoreError",
    "Datastore",
    "RestDatastore",
    "PostgresDatastore",
    "connect_datastore",
    "build_setup_sql",
]

logger = logging.getLogger(__name__)

# 42P01: undefined_table (PostgreSQL) / PGRST205: table not in schema cache (PostgREST)
MISSING_TABLE_CODES = frozenset({"42P01", "PGRST205"})
NIL_UUID = "00000000-0000-0000-0000-000000000000"
_REMEDIATION = "Update the connection settings of the project."


class DatastoreError(Exception):
    """A datastore operation was rejected."""


class Datastore(Protocol):
    def table_exists(self, table: str) -> bool: ...

    def supports_statements(self) -> bool: ...

    def execute_statement(self, sql: str) -> None: ...

    def insert_rows(self, table: str, rows: Sequence[dict[str, Any]]) -> int: ...

    def delete_all(self, table: str) -> None: ...

    def delete_period(self, table: str, month: int, year: int) -> None: ...

    def close(self) -> None: ...


def _json_default(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    raise TypeError(f"not JSON serializable: {type(value).__name__}")


class RestDatastore:
    """PostgREST client (Supabase style ``/rest/v1``)."""

    def __init__(
        self,
        address: str,
        secret: str,
        *,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = address.rstrip("/") + "/rest/v1"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": secret,
                "Authorization": f"Bearer {secret}",
                "Content-Type": "application/json",
                "Prefer": "return=minimal",
            }
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        try:
            return self.session.request(method, f"{self.base_url}/{path}", timeout=self.timeout, **kwargs)
        except requests.ConnectionError as e:
            raise ConfigurationError("Target datastore unreachable", _REMEDIATION) from e
        except requests.RequestException as e:
            raise DatastoreError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _error_body(response: requests.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {"message": response.text or response.reason}
        return body if isinstance(body, dict) else {"message": str(body)}

    def _check(self, response: requests.Response) -> None:
        if response.ok:
            return
        body = self._error_body(response)
        if response.status_code in (401, 403):
            raise ConfigurationError("Target datastore rejected the credentials", _REMEDIATION)
        raise DatastoreError(str(body.get("message") or f"HTTP {response.status_code}"))

    def table_exists(self, table: str) -> bool:
        response = self._request("GET", table, params={"select": "id", "limit": "1"})
        if response.ok:
            return True
        if str(self._error_body(response).get("code")) in MISSING_TABLE_CODES:
            return False
        self._check(response)
        return True  # pragma: no cover (_check always raises here)

    def supports_statements(self) -> bool:
        try:
            response = self.session.post(
                f"{self.base_url}/rpc/exec_sql",
                json={"sql_query": "SELECT 1"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.debug("exec_sql probe failed: %s", e)
            return False
        return response.ok

    def execute_statement(self, sql: str) -> None:
        self._check(self._request("POST", "rpc/exec_sql", json={"sql_query": sql}))

    def insert_rows(self, table: str, rows: Sequence[dict[str, Any]]) -> int:
        if not rows:
            return 0
        payload = json.dumps(list(rows), ensure_ascii=False, default=_json_default)
        self._check(self._request("POST", table, data=payload.encode("utf-8")))
        return len(rows)

    def delete_all(self, table: str) -> None:
        # PostgREST は無条件 DELETE を拒否するため常に真となるフィルタを付与
        self._check(self._request("DELETE", table, params={"id": f"neq.{NIL_UUID}"}))

    def delete_period(self, table: str, month: int, year: int) -> None:
        params = {"import_month": f"eq.{month}", "import_year": f"eq.{year}"}
        self._check(self._request("DELETE", table, params=params))

    def close(self) -> None:
        self.session.close()


class PostgresDatastore:
    """Direct PostgreSQL target (autocommit; one statement per call)."""

    def __init__(self, dsn: str, *, connect: Callable[..., Any] = psycopg2.connect) -> None:
        try:
            self.conn = connect(dsn)
        except psycopg2.OperationalError as e:
            raise ConfigurationError("Target datastore unreachable", _REMEDIATION) from e
        self.conn.autocommit = True

    def _execute(self, sql: str, params: Sequence[Any] | None = None) -> Any:
        cur = self.conn.cursor()
        try:
            cur.execute(sql, params)
        except psycopg2.Error as e:
            cur.close()
            raise DatastoreError(str(e).strip()) from e
        return cur

    def table_exists(self, table: str) -> bool:
        cur = self._execute(
            "SELECT 1 FROM information_schema.tables WHERE table_name = %s LIMIT 1", (table,)
        )
        try:
            return cur.fetchone() is not None
        finally:
            cur.close()

    def supports_statements(self) -> bool:
        return True

    def execute_statement(self, sql: str) -> None:
        self._execute(sql).close()

    def insert_rows(self, table: str, rows: Sequence[dict[str, Any]]) -> int:
        if not rows:
            return 0
        cur = self.conn.cursor()
        try:
            result = insert_records(cur, table, rows)
        except BatchInsertError as e:
            raise DatastoreError(str(e)) from e
        finally:
            cur.close()
        logger.debug("inserted %d rows into %s in %.3fs", result.inserted_rows, table, result.elapsed_seconds)
        return result.inserted_rows

    def delete_all(self, table: str) -> None:
        self._execute(f"DELETE FROM {quote_ident(table)}").close()

    def delete_period(self, table: str, month: int, year: int) -> None:
        self._execute(
            f"DELETE FROM {quote_ident(table)} WHERE import_month = %s AND import_year = %s",
            (month, year),
        ).close()

    def close(self) -> None:
        self.conn.close()


def connect_datastore(credentials: ResolvedCredentials, *, timeout: float = 30.0) -> Datastore:
    """Pick the adapter by address scheme (postgres DSN vs. REST URL)."""
    address = credentials.address
    if address.startswith(("postgres://", "postgresql://")):
        return PostgresDatastore(address)
    if address.startswith(("http://", "https://")):
        return RestDatastore(address, credentials.secret, timeout=timeout)
    raise ConfigurationError(f"Unsupported datastore address scheme: {address.split(':', 1)[0]}", _REMEDIATION)


_LEGACY_COLUMNS = """\
  total_expected_accumulation NUMERIC,
  product_type_new TEXT,
  producer_new TEXT,
  documents_transfer_date DATE,
"""


def build_setup_sql(table: str, legacy: bool = False) -> str:
    """CREATE TABLE script for a missing target table."""
    t = quote_ident(table)
    return (
        "-- Run this in the datastore SQL editor:\n"
        f"CREATE TABLE IF NOT EXISTS {t} (\n"
        "  id UUID DEFAULT gen_random_uuid() PRIMARY KEY,\n"
        f"{_LEGACY_COLUMNS if legacy else ''}"
        "  raw_data JSONB,\n"
        "  project_id TEXT NOT NULL,\n"
        "  import_batch TEXT,\n"
        "  import_date TIMESTAMPTZ,\n"
        "  import_month INTEGER,\n"
        "  import_year INTEGER,\n"
        "  created_at TIMESTAMPTZ DEFAULT NOW(),\n"
        "  updated_at TIMESTAMPTZ DEFAULT NOW()\n"
        ");\n"
        "\n"
        f"CREATE INDEX IF NOT EXISTS {quote_ident(table + '_period_idx')} ON {t} (import_year, import_month);\n"
        "\n"
        f"ALTER TABLE {t} ENABLE ROW LEVEL SECURITY;\n"
        "\n"
        f'CREATE POLICY "Service role full access" ON {t}\n'
        "  FOR ALL USING (true) WITH CHECK (true);\n"
        "\n"
        "NOTIFY pgrst, 'reload schema';"
    )
