from __future__ import annotations

import json
from datetime import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from sheet_ingest.db.datastore import RestDatastore
from sheet_ingest.errors import ConfigurationError, FatalImportError
from sheet_ingest.excel.reader import normalize_sheet
from sheet_ingest.logging.error_log import ErrorLogBuffer
from sheet_ingest.logging.import_log import MemoryImportLogSink
from sheet_ingest.models.config_models import IngestionConfig
from sheet_ingest.models.import_batch import BatchStatus, ImportBatch, ImportMode, ImportOutcome, SetupRequired
from sheet_ingest.models.row_data import TransformedRecord
from sheet_ingest.services.orchestrator import run_import
from sheet_ingest.services.transformer import transform_rows

"""Batch ingestion engine against an in-memory datastore.

Covers sub-batching, per-sub-batch recovery, import modes, the missing
table pre-flight and the single import-log write per run.
"""

CFG = IngestionConfig(statement_batch_size=100, structured_batch_size=100)


def _batch(mode: ImportMode = ImportMode.APPEND, month: int = 3, year: int = 2024) -> ImportBatch:
    return ImportBatch(
        project_id="p1",
        user_id="u1",
        file_name="data.xlsx",
        file_size=2048,
        target_table="master_data",
        import_mode=mode,
        import_month=month,
        import_year=year,
        sheet_name="Sheet1",
    )


def _records(batch: ImportBatch, n: int) -> list[TransformedRecord]:
    return [
        TransformedRecord(
            payload={"Name": f"row{i}", "Amount": str(i)},
            project_id=batch.project_id,
            import_batch=batch.batch_id,
            import_date="2024-03-01T00:00:00Z",
            import_month=batch.import_month,
            import_year=batch.import_year,
        )
        for i in range(n)
    ]


def _run(store, batch, n, sink=None, **kwargs):
    sink = sink or MemoryImportLogSink()
    return run_import(_records(batch, n), batch, store, log_sink=sink, config=CFG, **kwargs), sink


def test_append_250_rows_in_three_sub_batches(make_datastore, capsys):
    store = make_datastore()
    batch = _batch()
    outcome, sink = _run(store, batch, 250)

    assert isinstance(outcome, ImportOutcome)
    assert batch.rows_imported == 250
    assert batch.status is BatchStatus.SUCCESS
    assert batch.sub_batches_attempted == 3
    assert store.insert_calls == 3
    assert len(store.tables["master_data"]) == 250
    assert store.tables["master_data"][0]["raw_data"] == {"Name": "row0", "Amount": "0"}
    assert store.probes == 1

    d = outcome.to_dict()
    assert d["success"] is True
    assert (d["imported"], d["total"]) == (250, 250)
    assert "errors" not in d
    assert len(sink.import_logs) == 1
    assert len(sink.audit_logs) == 1
    assert sink.import_logs[0]["status"] == "success"
    assert "SUMMARY batch=" in capsys.readouterr().out


def test_statement_strategy_sub_batches(make_datastore):
    store = make_datastore(statements=True)
    batch = _batch()
    _run(store, batch, 250)
    assert batch.status is BatchStatus.SUCCESS
    assert len(store.executed) == 3
    assert store.executed[0].startswith('INSERT INTO "master_data"')
    assert store.executed[2].count("'p1'") == 50


def test_failed_sub_batch_is_recorded_and_loop_continues(make_datastore, temp_workdir: Path):
    store = make_datastore(fail_calls=[2])
    batch = _batch()
    error_log = ErrorLogBuffer()
    outcome, sink = _run(store, batch, 250, error_log=error_log)

    assert batch.rows_imported == 150
    assert batch.status is BatchStatus.PARTIAL
    assert batch.sub_batches_attempted == 3
    assert len(batch.errors) == 1
    assert batch.errors[0].startswith("Batch 2:")
    assert outcome.to_dict()["errors"] == batch.errors
    assert sink.import_logs[0]["rows_failed"] == 100

    (log_file,) = (temp_workdir / "logs").glob("errors-*.log")
    (line,) = log_file.read_text(encoding="utf-8").splitlines()
    record = json.loads(line)
    assert record["batch"] == 2
    assert record["error_type"] == "DATASTORE_ERROR"
    assert record["sheet"] == "Sheet1"
    assert record["rows"] == 100
    assert record["batch_id"] == batch.batch_id


def test_every_sub_batch_failing(make_datastore):
    store = make_datastore(fail_calls=[1, 2])
    batch = _batch()
    outcome, _ = _run(store, batch, 150)
    assert batch.status is BatchStatus.FAILED
    assert outcome.to_dict()["success"] is False
    assert outcome.message.startswith("❌")


def test_response_errors_are_capped(make_datastore):
    store = make_datastore(fail_calls=range(1, 30))
    batch = _batch()
    sink = MemoryImportLogSink()
    outcome = run_import(
        _records(batch, 25),
        batch,
        store,
        log_sink=sink,
        config=IngestionConfig(structured_batch_size=1, response_error_count=10),
    )
    assert batch.error_count == 25
    assert len(batch.errors) == 20
    assert len(outcome.errors) == 10
    assert sink.import_logs[0]["error_details"]["count"] == 25
    assert len(sink.import_logs[0]["error_details"]["errors"]) == 20


def test_replace_period_keeps_other_months(make_datastore):
    store = make_datastore()
    march = _batch(month=3)
    _run(store, march, 5)
    april = _batch(month=4)
    _run(store, april, 7)
    assert len(store.tables["master_data"]) == 12

    april_again = _batch(ImportMode.REPLACE_PERIOD, month=4)
    _run(store, april_again, 2)

    rows = store.tables["master_data"]
    assert store.deletes == [("period", "master_data", 4, 2024)]
    assert sum(1 for r in rows if r["import_month"] == 3) == 5
    april_rows = [r for r in rows if r["import_month"] == 4]
    assert len(april_rows) == 2
    assert {r["import_batch"] for r in april_rows} == {april_again.batch_id}


def test_replace_all_clears_table(make_datastore):
    store = make_datastore()
    _run(store, _batch(month=1), 3)
    _run(store, _batch(ImportMode.REPLACE_ALL, month=2), 4)
    assert store.deletes == [("all", "master_data")]
    assert len(store.tables["master_data"]) == 4


def test_missing_table_returns_setup_script(make_datastore):
    store = make_datastore(tables=())
    batch = _batch()
    outcome, sink = _run(store, batch, 10, legacy_table=True)

    assert isinstance(outcome, SetupRequired)
    d = outcome.to_dict()
    assert d["needsSetup"] is True
    assert 'CREATE TABLE IF NOT EXISTS "master_data"' in d["setupSql"]
    assert "total_expected_accumulation NUMERIC" in d["setupSql"]
    assert store.insert_calls == 0
    assert store.probes == 0
    assert batch.status is BatchStatus.FAILED
    assert sink.import_logs[0]["status"] == "failed"


class _RejectingStore:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    def table_exists(self, table: str) -> bool:
        raise self.exc


def test_preflight_ingest_error_is_logged_then_raised():
    batch = _batch()
    sink = MemoryImportLogSink()
    with pytest.raises(ConfigurationError):
        run_import(_records(batch, 3), batch, _RejectingStore(ConfigurationError("unreachable")), log_sink=sink)
    assert batch.status is BatchStatus.FAILED
    assert sink.import_logs[0]["error_message"] == "unreachable"


def test_unexpected_error_becomes_fatal_import_error():
    batch = _batch()
    sink = MemoryImportLogSink()
    with pytest.raises(FatalImportError) as exc:
        run_import(_records(batch, 3), batch, _RejectingStore(KeyError("boom")), log_sink=sink)
    assert exc.value.batch_id == batch.batch_id
    assert isinstance(exc.value.__cause__, KeyError)
    assert len(sink.import_logs) == 1
    assert sink.audit_logs[0]["details"]["status"] == "failed"


class _BrokenSink:
    def write_import_log(self, batch):
        raise RuntimeError("log table unavailable")

    def write_audit(self, entry):  # pragma: no cover
        raise RuntimeError("log table unavailable")


def test_log_sink_failure_does_not_change_outcome(make_datastore):
    store = make_datastore()
    batch = _batch()
    outcome = run_import(_records(batch, 5), batch, store, log_sink=_BrokenSink(), config=CFG)
    assert isinstance(outcome, ImportOutcome)
    assert batch.status is BatchStatus.SUCCESS


def _ok_session() -> MagicMock:
    session = MagicMock()
    session.headers = {}
    ok = MagicMock(ok=True, status_code=200)
    session.request.return_value = ok
    session.post.return_value = MagicMock(ok=False, status_code=404)
    return session


def test_time_cells_import_through_rest_datastore():
    sheet = normalize_sheet([["Name", "Amount", "Start", "City"], ["Dan", 100, time(8, 30), "Haifa"]], "Sheet1")
    batch = _batch()
    records = transform_rows(sheet, project_id="p1", batch_id=batch.batch_id, month=3, year=2024)
    session = _ok_session()
    store = RestDatastore("https://x.supabase.co", "secret", session=session)

    outcome = run_import(records, batch, store, log_sink=MemoryImportLogSink(), config=CFG)

    assert isinstance(outcome, ImportOutcome)
    assert batch.status is BatchStatus.SUCCESS
    assert batch.rows_imported == 1
    method, _ = session.request.call_args.args
    assert method == "POST"
    (sent,) = json.loads(session.request.call_args.kwargs["data"].decode("utf-8"))
    assert sent["raw_data"]["Start"] == "08:30:00"
