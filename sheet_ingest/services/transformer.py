from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sheet_ingest.errors import LayoutMismatchError, ValidationError
from sheet_ingest.excel.reader import SheetData, is_empty
from sheet_ingest.models.config_models import LegacyLayout
from sheet_ingest.models.row_data import LegacyValues, TransformedRecord
from sheet_ingest.profiling.inference import MAX_YEAR, MIN_YEAR, as_text, clean_number, parse_date

"""Row transformer (import path).

Each non-blank data row becomes a TransformedRecord whose payload maps the
original header text to the cell value (empty cells skipped). When the
target table has a legacy fixed-position layout, derived fields are read by
column position after the header row has been checked against the layout.
"""

__all__ = [
    "validate_layout",
    "extract_legacy_values",
    "transform_rows",
]

logger = logging.getLogger(__name__)


def _json_safe(value: Any) -> Any:
    # datetime / date / time (時刻のみのセル) / pd.Timestamp
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def validate_layout(headers: Sequence[str], layout: LegacyLayout) -> None:
    """Fail fast when the header row no longer matches the fixed-position layout."""
    problems: list[str] = []
    for f in layout.fields:
        if f.position >= len(headers):
            problems.append(
                f"position {f.position} ({f.name}) missing: sheet has {len(headers)} columns"
            )
            continue
        actual = headers[f.position]
        if f.labels and not any(label.lower() in actual.lower() for label in f.labels):
            problems.append(
                f"position {f.position} ({f.name}) expected one of {list(f.labels)}, found {actual!r}"
            )
    if problems:
        raise LayoutMismatchError(
            f"Header does not match layout {layout.schema_id}@{layout.version}: " + "; ".join(problems)
        )


def _cell(row: Sequence[Any], position: int | None) -> Any:
    if position is None or position >= len(row):
        return None
    value = row[position]
    return None if is_empty(value) else value


def _trimmed(value: Any) -> str | None:
    if value is None:
        return None
    text = as_text(value).strip()
    return text or None


def _valid_date(value: Any) -> str | None:
    parsed = parse_date(value, allow_serial=True)
    if parsed is None or not (MIN_YEAR <= parsed.year <= MAX_YEAR):
        return None
    return parsed.strftime("%Y-%m-%d")


def extract_legacy_values(row: Sequence[Any], layout: LegacyLayout) -> LegacyValues:
    def pos(name: str) -> int | None:
        f = layout.get_field(name)
        return f.position if f is not None else None

    accumulation = clean_number(_cell(row, pos("expected_accumulation"))) or 0.0
    deposit = clean_number(_cell(row, pos("one_time_deposit"))) or 0.0
    total = accumulation + deposit
    return LegacyValues(
        total_expected_accumulation=total if total > 0 else None,
        product_type_new=_trimmed(_cell(row, pos("product_type"))),
        producer_new=_trimmed(_cell(row, pos("producer"))),
        documents_transfer_date=_valid_date(_cell(row, pos("documents_transfer_date"))),
    )


def transform_rows(
    sheet: SheetData,
    *,
    project_id: str,
    batch_id: str,
    month: int,
    year: int,
    layout: LegacyLayout | None = None,
    import_date: str | None = None,
) -> list[TransformedRecord]:
    """Convert data rows into records.

    Raises:
        LayoutMismatchError: strict layout and the header row does not match
        ValidationError: no row produced a non-empty payload
    """
    if layout is not None and layout.strict:
        validate_layout(sheet.headers, layout)
    stamp = import_date or datetime.now(UTC).isoformat().replace("+00:00", "Z")

    records: list[TransformedRecord] = []
    for i, row in enumerate(sheet.rows):
        payload = {
            header: _json_safe(value)
            for header, value in zip(sheet.headers, row, strict=False)
            if not is_empty(value)
        }
        if not payload:
            continue
        records.append(
            TransformedRecord(
                payload=payload,
                project_id=project_id,
                import_batch=batch_id,
                import_date=stamp,
                import_month=month,
                import_year=year,
                legacy=extract_legacy_values(row, layout) if layout is not None else None,
                row_number=sheet.row_numbers[i] if i < len(sheet.row_numbers) else 0,
            )
        )

    if not records:
        raise ValidationError("No valid data to import")
    logger.info("transformed %d of %d rows from sheet %s", len(records), len(sheet.rows), sheet.sheet_name)
    return records
