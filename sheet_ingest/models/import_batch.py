from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sheet_ingest.errors import ValidationError

"""ImportBatch: state of one execution of the ingestion pipeline.

Lifecycle: created in ``processing`` at pipeline start, mutated as sub-batches
complete, finalized exactly once into success / partial / failed.
"""

__all__ = [
    "BatchStatus",
    "ImportMode",
    "ImportBatch",
    "SetupRequired",
    "ImportOutcome",
    "new_batch_id",
    "MAX_RETAINED_ERRORS",
]

_BASE36 = string.digits + string.ascii_lowercase


class BatchStatus(Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class ImportMode(Enum):
    APPEND = "append"
    REPLACE_PERIOD = "replace_period"
    REPLACE_ALL = "replace_all"

    @classmethod
    def parse(cls, value: str | ImportMode | None) -> ImportMode:
        if isinstance(value, ImportMode):
            return value
        if not value:
            return cls.APPEND
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Unknown import mode: {value}") from None


def new_batch_id() -> str:
    """``batch_<epoch-ms>_<6 random base36 chars>``"""
    suffix = "".join(random.choices(_BASE36, k=6))
    return f"batch_{int(time.time() * 1000)}_{suffix}"


MAX_RETAINED_ERRORS = 20


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


@dataclass
class ImportBatch:
    project_id: str
    user_id: str | None
    file_name: str
    file_size: int
    target_table: str
    import_mode: ImportMode
    import_month: int
    import_year: int
    sheet_name: str | None = None
    batch_id: str = field(default_factory=new_batch_id)
    rows_total: int = 0
    rows_imported: int = 0
    errors: list[str] = field(default_factory=list)
    error_count: int = 0  # errors が上限で切られても総数を保持
    error_cap: int = MAX_RETAINED_ERRORS
    status: BatchStatus = BatchStatus.PROCESSING
    started_at: str = field(default_factory=_utc_now_iso)
    completed_at: str | None = None
    duration_ms: int = 0
    sub_batches_attempted: int = 0
    _t0: float = field(default_factory=time.perf_counter, repr=False, compare=False)

    @property
    def rows_failed(self) -> int:
        return self.rows_total - self.rows_imported

    @property
    def finalized(self) -> bool:
        return self.status is not BatchStatus.PROCESSING

    def record_success(self, size: int) -> None:
        self.sub_batches_attempted += 1
        self.rows_imported += size

    def add_error(self, message: str) -> None:
        """Count an error; only the first ``error_cap`` messages are kept."""
        self.error_count += 1
        if len(self.errors) < self.error_cap:
            self.errors.append(message)

    def record_failure(self, batch_number: int, message: str) -> None:
        self.sub_batches_attempted += 1
        self.add_error(f"Batch {batch_number}: {message}")

    def finalize(self, status: BatchStatus | None = None) -> BatchStatus:
        """Move to the terminal state. Second call raises.

        Without an explicit status: success if no errors, partial if any rows
        were imported, failed otherwise.
        """
        if self.finalized:
            raise RuntimeError(f"batch {self.batch_id} already finalized ({self.status.value})")
        if status is None:
            if not self.error_count:
                status = BatchStatus.SUCCESS
            elif self.rows_imported > 0:
                status = BatchStatus.PARTIAL
            else:
                status = BatchStatus.FAILED
        if status is BatchStatus.PROCESSING:
            raise ValueError("processing is not a terminal status")
        self.status = status
        self.completed_at = _utc_now_iso()
        self.duration_ms = int((time.perf_counter() - self._t0) * 1000)
        return status

    def import_options(self) -> dict[str, Any]:
        return {
            "importMode": self.import_mode.value,
            "importMonth": self.import_month,
            "importYear": self.import_year,
            "sheetName": self.sheet_name,
        }


@dataclass(frozen=True)
class SetupRequired:
    """Recoverable pre-flight outcome: the target table has to be provisioned first."""
    table_name: str
    setup_sql: str
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "needsSetup": True,
            "error": self.message or f"Table {self.table_name} does not exist",
            "tableName": self.table_name,
            "setupSql": self.setup_sql,
        }


@dataclass(frozen=True)
class ImportOutcome:
    """Finalized batch summary returned to the caller (errors already capped)."""
    batch: ImportBatch
    message: str
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        b = self.batch
        out: dict[str, Any] = {
            "success": b.rows_imported > 0,
            "imported": b.rows_imported,
            "total": b.rows_total,
            "tableName": b.target_table,
            "batchId": b.batch_id,
            "importMonth": b.import_month,
            "importYear": b.import_year,
            "importMode": b.import_mode.value,
            "durationMs": b.duration_ms,
            "status": b.status.value,
            "message": self.message,
        }
        if self.errors:
            out["errors"] = list(self.errors)
        return out
