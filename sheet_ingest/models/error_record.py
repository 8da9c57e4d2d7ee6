from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .import_batch import ImportBatch

"""One rejected sub-batch, as written to the JSON Lines error log."""

__all__ = [
    "ErrorRecord",
    "ERROR_TYPES",
]

ERROR_TYPES = ("DATASTORE_ERROR", "INSERT_ERROR")


@dataclass(frozen=True)
class ErrorRecord:
    """Rejected sub-batch of an import run.

    Attributes:
        timestamp: ISO8601 UTC with 'Z' suffix
        batch_id: import batch identifier (batch_<ms>_<6 chars>)
        table: target table of the run
        file / sheet: source of the rows
        batch: 1-based sub-batch number
        rows: rows contained in the rejected sub-batch
        error_type: one of ERROR_TYPES
        db_message: message returned by the datastore
    """
    timestamp: str
    batch_id: str
    table: str
    file: str
    sheet: str
    batch: int
    rows: int
    error_type: str
    db_message: str

    @classmethod
    def for_sub_batch(
        cls,
        batch: ImportBatch,
        number: int,
        rows: int,
        error_type: str,
        db_message: str,
    ) -> ErrorRecord:
        if error_type not in ERROR_TYPES:
            raise ValueError(f"unknown error type: {error_type}")
        return cls(
            timestamp=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            batch_id=batch.batch_id,
            table=batch.target_table,
            file=batch.file_name,
            sheet=batch.sheet_name or "",
            batch=number,
            rows=rows,
            error_type=error_type,
            db_message=db_message,
        )

    def to_json_line(self) -> str:
        # ヘブライ語メッセージはそのまま残す
        return json.dumps(asdict(self), ensure_ascii=False)
