from __future__ import annotations

from sheet_ingest.models.import_batch import ImportBatch, ImportMode

"""Summary rendering for finalized import batches.

- render_summary_line: one machine-greppable line, logged at SUMMARY level
- render_status_message: the human-readable message returned to the caller
"""

__all__ = [
    "format_seconds",
    "render_summary_line",
    "render_status_message",
]


def format_seconds(seconds: float) -> str:
    """Render elapsed seconds without scientific notation or trailing zeros."""
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def render_summary_line(batch: ImportBatch) -> str:
    """Format:
    batch={id} table={table} mode={mode} status={status} rows={imported}/{total}
    failed={failed} sub_batches={n} errors={n} elapsed_sec={sec}

    The SUMMARY label is added by the log formatter.
    """
    return (
        f"batch={batch.batch_id} "
        f"table={batch.target_table} "
        f"mode={batch.import_mode.value} "
        f"status={batch.status.value} "
        f"rows={batch.rows_imported}/{batch.rows_total} "
        f"failed={batch.rows_failed} "
        f"sub_batches={batch.sub_batches_attempted} "
        f"errors={batch.error_count} "
        f"elapsed_sec={format_seconds(batch.duration_ms / 1000)}"
    )


def _mode_label(batch: ImportBatch) -> str:
    if batch.import_mode is ImportMode.APPEND:
        return "הוספה"
    if batch.import_mode is ImportMode.REPLACE_PERIOD:
        return f"החלפת {batch.import_month}/{batch.import_year}"
    return "החלפה מלאה"


def render_status_message(batch: ImportBatch) -> str:
    if batch.rows_imported > 0:
        return (
            f"✅ יובאו {batch.rows_imported} שורות מתוך {batch.rows_total} "
            f"({_mode_label(batch)}) - {batch.duration_ms / 1000:.1f} שניות"
        )
    return "❌ לא יובאו שורות - בדוק את פורמט הקובץ"
