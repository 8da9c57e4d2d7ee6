from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

"""Column-level profiling models (analyze path).

ColumnProfile is transient and request scoped; nothing here is persisted.
"""

__all__ = [
    "DataType",
    "Category",
    "ColumnStats",
    "ColumnProfile",
]


class DataType(Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    ENUM = "enum"
    ID = "id"
    UNKNOWN = "unknown"


class Category(Enum):
    """Semantic grouping of a column by name pattern.

    Declaration order is the bucket order of TableProfile.categories.
    """
    FINANCIAL = "financial"
    DATES = "dates"
    PEOPLE = "people"
    STATUS = "status"
    COMPANIES = "companies"
    CONTACT = "contact"
    IDENTIFIERS = "identifiers"
    SYSTEM = "system"
    OTHER = "other"


@dataclass(frozen=True)
class ColumnStats:
    """Whole-column statistics.

    Invariant: null_count + (number of non-empty values) == count.
    """
    count: int
    null_count: int
    null_percentage: int  # 0..100 (rounded)
    unique_count: int  # str() 正規化後のユニーク数
    sum: float | None = None
    avg: float | None = None
    min: float | None = None
    max: float | None = None
    unique_values: tuple[str, ...] | None = None  # <= 50
    value_distribution: dict[str, int] | None = None  # <= 50 entries

    @property
    def non_null_count(self) -> int:
        return self.count - self.null_count

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "count": self.count,
            "nullCount": self.null_count,
            "nullPercentage": self.null_percentage,
            "uniqueCount": self.unique_count,
        }
        if self.sum is not None:
            out.update(sum=self.sum, avg=self.avg, min=self.min, max=self.max)
        if self.unique_values is not None:
            out["uniqueValues"] = list(self.unique_values)
        if self.value_distribution is not None:
            out["valueDistribution"] = dict(self.value_distribution)
        return out


@dataclass(frozen=True)
class ColumnProfile:
    name: str  # original header (placeholder when blank)
    display_name: str
    data_type: DataType
    category: Category
    stats: ColumnStats
    sample_values: tuple[Any, ...]
    recommendation_score: float
    is_recommended: bool
    position: int  # 0-based original column order (ranking tie-break)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "dataType": self.data_type.value,
            "category": self.category.value,
            "stats": self.stats.to_dict(),
            "sampleValues": [_jsonable(v) for v in self.sample_values],
            "recommendationScore": self.recommendation_score,
            "isRecommended": self.is_recommended,
        }


def _jsonable(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value
