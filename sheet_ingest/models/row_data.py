from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""TransformedRecord: one spreadsheet row ready for insertion.

Produced by the row transformer; consumed (and discarded) by the ingestion
engine. The payload keeps the original header text as keys.
"""

__all__ = [
    "TransformedRecord",
    "LegacyValues",
]


@dataclass(frozen=True)
class LegacyValues:
    """Derived fields for the fixed-layout master table."""
    total_expected_accumulation: float | None = None
    product_type_new: str | None = None
    producer_new: str | None = None
    documents_transfer_date: str | None = None  # YYYY-MM-DD

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_expected_accumulation": self.total_expected_accumulation,
            "product_type_new": self.product_type_new,
            "producer_new": self.producer_new,
            "documents_transfer_date": self.documents_transfer_date,
        }


@dataclass(frozen=True)
class TransformedRecord:
    payload: dict[str, Any]  # header -> value (空セル除外, JSON safe)
    project_id: str
    import_batch: str
    import_date: str  # ISO8601 UTC
    import_month: int
    import_year: int
    legacy: LegacyValues | None = None
    row_number: int = field(default=0, compare=False)  # 1-based sheet row (diagnostics)

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "project_id": self.project_id,
            "raw_data": self.payload,
            "import_batch": self.import_batch,
            "import_date": self.import_date,
            "import_month": self.import_month,
            "import_year": self.import_year,
        }
        if self.legacy is not None:
            row.update(self.legacy.to_dict())
        return row
