from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from sheet_ingest.models.config_models import IngestionConfig
from sheet_ingest.models.import_batch import ImportBatch

if TYPE_CHECKING:
    from sheet_ingest.db.datastore import Datastore

"""Durable import log + audit trail.

One import-log row per import attempt and one audit row referencing it,
written after the batch is finalized. The tables belong to an external
logging collaborator; this module only shapes the rows and inserts them.
"""

__all__ = [
    "AUDIT_ACTION",
    "ImportLogSink",
    "DatastoreImportLogSink",
    "MemoryImportLogSink",
    "import_log_row",
    "audit_entry",
]

AUDIT_ACTION = "master_import"


def import_log_row(batch: ImportBatch, cfg: IngestionConfig | None = None) -> dict[str, Any]:
    cfg = cfg or IngestionConfig()
    errors = batch.errors
    return {
        "batch_id": batch.batch_id,
        "project_id": batch.project_id,
        "user_id": batch.user_id,
        "file_name": batch.file_name,
        "file_size": batch.file_size,
        "target_table": batch.target_table,
        "status": batch.status.value,
        "import_options": batch.import_options(),
        "rows_total": batch.rows_total,
        "rows_imported": batch.rows_imported,
        "rows_failed": batch.rows_failed,
        # 先頭 N 件のみ保存
        "error_message": "; ".join(errors[: cfg.error_summary_count]) if errors else None,
        "error_details": (
            {"errors": errors[: cfg.error_detail_count], "count": batch.error_count} if errors else None
        ),
        "started_at": batch.started_at,
        "completed_at": batch.completed_at,
        "duration_ms": batch.duration_ms,
    }


def audit_entry(batch: ImportBatch) -> dict[str, Any]:
    return {
        "user_id": batch.user_id,
        "project_id": batch.project_id,
        "action": AUDIT_ACTION,
        "details": {
            "batch_id": batch.batch_id,
            "table_name": batch.target_table,
            "file_name": batch.file_name,
            "file_size": batch.file_size,
            "rows_imported": batch.rows_imported,
            "total_rows": batch.rows_total,
            "duration_ms": batch.duration_ms,
            "status": batch.status.value,
        },
    }


class ImportLogSink(Protocol):
    def write_import_log(self, batch: ImportBatch) -> None: ...

    def write_audit(self, entry: dict[str, Any]) -> None: ...


class DatastoreImportLogSink:
    """Insert log rows into ``import_logs`` / ``audit_logs`` of a datastore."""

    def __init__(
        self,
        datastore: Datastore,
        cfg: IngestionConfig | None = None,
        log_table: str = "import_logs",
        audit_table: str = "audit_logs",
    ) -> None:
        self._store = datastore
        self._cfg = cfg or IngestionConfig()
        self.log_table = log_table
        self.audit_table = audit_table

    def write_import_log(self, batch: ImportBatch) -> None:
        self._store.insert_rows(self.log_table, [import_log_row(batch, self._cfg)])

    def write_audit(self, entry: dict[str, Any]) -> None:
        self._store.insert_rows(self.audit_table, [entry])


class MemoryImportLogSink:
    """Keeps rows in memory (tests / dry runs)."""

    def __init__(self, cfg: IngestionConfig | None = None) -> None:
        self._cfg = cfg or IngestionConfig()
        self.import_logs: list[dict[str, Any]] = []
        self.audit_logs: list[dict[str, Any]] = []

    def write_import_log(self, batch: ImportBatch) -> None:
        self.import_logs.append(import_log_row(batch, self._cfg))

    def write_audit(self, entry: dict[str, Any]) -> None:
        self.audit_logs.append(entry)
