from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Any

from sheet_ingest.db.datastore import Datastore, DatastoreError, build_setup_sql
from sheet_ingest.db.inserters import RowInserter, select_inserter
from sheet_ingest.errors import FatalImportError, IngestError, SchemaMissingError
from sheet_ingest.logging.error_log import ErrorLogBuffer, ErrorRecord
from sheet_ingest.logging.import_log import ImportLogSink, audit_entry
from sheet_ingest.logging.init import batch_logger, log_summary
from sheet_ingest.models.config_models import IngestionConfig
from sheet_ingest.models.import_batch import (
    BatchStatus,
    ImportBatch,
    ImportMode,
    ImportOutcome,
    SetupRequired,
)
from sheet_ingest.models.row_data import TransformedRecord
from sheet_ingest.services.progress import SubBatchProgress
from sheet_ingest.services.summary import render_status_message, render_summary_line

"""Batch ingestion engine.

processing -> success | partial | failed (terminal, exactly once)

1. pre-flight: table probe (missing -> SetupRequired, not an exception)
2. strategy: capability probe, once per run
3. import mode: delete once before inserting (not transactional with the inserts)
4. sequential sub-batches; a failed sub-batch is recorded and the loop continues
5. import log + audit row written once, SUMMARY line logged
"""

__all__ = [
    "SETUP_REQUIRED_MESSAGE",
    "chunked",
    "apply_import_mode",
    "abort_batch",
    "run_import",
]

SETUP_REQUIRED_MESSAGE = "setup required"


def chunked(rows: Sequence[dict[str, Any]], size: int) -> Iterator[list[dict[str, Any]]]:
    for start in range(0, len(rows), size):
        yield list(rows[start:start + size])


def apply_import_mode(datastore: Datastore, batch: ImportBatch) -> None:
    log = batch_logger(__name__, batch.batch_id)
    table = batch.target_table
    if batch.import_mode is ImportMode.REPLACE_ALL:
        log.warning("replace_all: deleting every row of %s", table)
        datastore.delete_all(table)
    elif batch.import_mode is ImportMode.REPLACE_PERIOD:
        log.warning(
            "replace_period: deleting rows of %s tagged %d/%d",
            table, batch.import_month, batch.import_year,
        )
        datastore.delete_period(table, batch.import_month, batch.import_year)


def _error_type(exc: BaseException) -> str:
    if isinstance(exc, DatastoreError):
        return "DATASTORE_ERROR"
    return "INSERT_ERROR"


def _persist(batch: ImportBatch, log_sink: ImportLogSink, error_log: ErrorLogBuffer | None = None) -> None:
    """Write the import log + audit row and flush the JSONL buffer.

    Failures of the logging collaborator never change the batch outcome.
    """
    log = batch_logger(__name__, batch.batch_id)
    try:
        log_sink.write_import_log(batch)
        log_sink.write_audit(audit_entry(batch))
    except Exception as e:
        log.error("failed writing import log: %s", e)
    if error_log is not None:
        counts = error_log.counts_by_type()
        try:
            path = error_log.flush()
        except OSError as e:
            log.error("failed flushing error log: %s", e)
        else:
            if path is not None:
                log.info("sub-batch errors %s written to %s", counts, path)
    log_summary(render_summary_line(batch))


def abort_batch(
    batch: ImportBatch,
    message: str,
    log_sink: ImportLogSink,
    error_log: ErrorLogBuffer | None = None,
) -> None:
    """Finalize ``batch`` as failed and write its logs (pre-flight or fatal errors)."""
    batch.add_error(message)
    batch.finalize(BatchStatus.FAILED)
    _persist(batch, log_sink, error_log)


def _insert_all(
    inserter: RowInserter,
    batch: ImportBatch,
    rows: Sequence[dict[str, Any]],
    error_log: ErrorLogBuffer | None,
) -> None:
    log = batch_logger(__name__, batch.batch_id)
    chunks = list(chunked(rows, inserter.batch_size))
    with SubBatchProgress(len(chunks), batch.target_table) as progress:
        for number, chunk in enumerate(chunks, start=1):
            try:
                inserted = inserter.insert(batch.target_table, chunk)
            except Exception as e:
                # サブバッチ単位で回復し次へ進む
                log.error("sub-batch %d failed (%d rows): %s", number, len(chunk), e)
                batch.record_failure(number, str(e))
                if error_log is not None:
                    error_log.append(ErrorRecord.for_sub_batch(batch, number, len(chunk), _error_type(e), str(e)))
                progress.advance(failed=True)
            else:
                batch.record_success(len(chunk))
                progress.advance(inserted or len(chunk))


def run_import(
    records: Sequence[TransformedRecord],
    batch: ImportBatch,
    datastore: Datastore,
    *,
    log_sink: ImportLogSink,
    config: IngestionConfig | None = None,
    legacy_table: bool = False,
    error_log: ErrorLogBuffer | None = None,
) -> ImportOutcome | SetupRequired:
    """Execute transformed records against the resolved datastore.

    Returns:
        ImportOutcome for a finalized batch (success / partial / failed), or
        SetupRequired when the target table does not exist.

    Raises:
        IngestError: pre-flight failure (credentials rejected, datastore unreachable);
            the batch is logged as failed first.
        FatalImportError: unexpected exception; the batch is logged as failed first.
    """
    cfg = config or IngestionConfig()
    log = batch_logger(__name__, batch.batch_id)
    batch.rows_total = len(records)
    table = batch.target_table
    log.info(
        "%d rows -> %s (mode=%s, period=%d/%d)",
        batch.rows_total, table, batch.import_mode.value, batch.import_month, batch.import_year,
    )

    try:
        if not datastore.table_exists(table):
            missing = SchemaMissingError(table, build_setup_sql(table, legacy=legacy_table))
            log.warning("%s; returning setup script", missing)
            abort_batch(batch, SETUP_REQUIRED_MESSAGE, log_sink, error_log)
            return SetupRequired(table_name=table, setup_sql=missing.setup_sql, message=str(missing))

        inserter = select_inserter(datastore, cfg)
        apply_import_mode(datastore, batch)
        rows = [r.to_row() for r in records]
        _insert_all(inserter, batch, rows, error_log)
    except IngestError as e:
        log.error("aborted: %s", e)
        abort_batch(batch, str(e), log_sink, error_log)
        raise
    except Exception as e:
        log.error("failed unexpectedly: %s", e)
        abort_batch(batch, str(e), log_sink, error_log)
        raise FatalImportError(str(e), batch_id=batch.batch_id) from e

    status = batch.finalize()
    _persist(batch, log_sink, error_log)
    if status is BatchStatus.PARTIAL:
        log.warning("partial: %d of %d rows", batch.rows_imported, batch.rows_total)
    return ImportOutcome(
        batch=batch,
        message=render_status_message(batch),
        errors=tuple(batch.errors[: cfg.response_error_count]),
    )
