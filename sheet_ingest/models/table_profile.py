from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .column_profile import Category, ColumnProfile

"""Table-level profiling models and report template definitions.

Template suggestions are ephemeral analysis output; a consumer UI may save
one, but nothing in this package persists them.
"""

__all__ = [
    "CalculatedField",
    "ChartConfig",
    "TemplateSuggestion",
    "CategorySummary",
    "TableProfile",
    "CATEGORY_INFO",
]

# Display info per category (icon, label) for the category summary.
CATEGORY_INFO: dict[Category, tuple[str, str]] = {
    Category.FINANCIAL: ("💰", "כספי"),
    Category.DATES: ("📅", "תאריכים"),
    Category.PEOPLE: ("👤", "אנשים"),
    Category.STATUS: ("📋", "סטטוס"),
    Category.COMPANIES: ("🏢", "חברות"),
    Category.CONTACT: ("📞", "יצירת קשר"),
    Category.IDENTIFIERS: ("🔢", "מזהים"),
    Category.SYSTEM: ("⚙️", "מערכת"),
    Category.OTHER: ("📁", "אחר"),
}

OPERATIONS = ("sum", "subtract", "multiply", "divide", "concat")
CHART_TYPES = ("pie", "bar", "line", "area")


@dataclass(frozen=True)
class CalculatedField:
    name: str
    display_name: str
    formula: str
    source_columns: tuple[str, ...]
    operation: str  # one of OPERATIONS

    def __post_init__(self) -> None:
        if self.operation not in OPERATIONS:
            raise ValueError(f"unsupported operation: {self.operation}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "formula": self.formula,
            "sourceColumns": list(self.source_columns),
            "operation": self.operation,
        }


@dataclass(frozen=True)
class ChartConfig:
    chart_type: str  # one of CHART_TYPES
    title: str
    value_column: str
    group_by_column: str

    def __post_init__(self) -> None:
        if self.chart_type not in CHART_TYPES:
            raise ValueError(f"unsupported chart type: {self.chart_type}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.chart_type,
            "title": self.title,
            "valueColumn": self.value_column,
            "groupByColumn": self.group_by_column,
        }


@dataclass(frozen=True)
class TemplateSuggestion:
    id: str
    name: str
    icon: str
    description: str
    columns: tuple[str, ...] = ()
    card_columns: tuple[str, ...] = ()
    filter_columns: tuple[str, ...] = ()
    calculated_fields: tuple[CalculatedField, ...] | None = None
    charts: tuple[ChartConfig, ...] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "description": self.description,
            "columns": list(self.columns),
            "cardColumns": list(self.card_columns),
            "filterColumns": list(self.filter_columns),
        }
        if self.calculated_fields:
            out["calculatedFields"] = [c.to_dict() for c in self.calculated_fields]
        if self.charts:
            out["charts"] = [c.to_dict() for c in self.charts]
        return out


@dataclass(frozen=True)
class CategorySummary:
    category: Category
    icon: str
    label: str
    count: int
    columns: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "icon": self.icon,
            "label": self.label,
            "count": self.count,
            "columns": list(self.columns),
        }


@dataclass(frozen=True)
class TableProfile:
    """Aggregate of all ColumnProfiles for one sheet."""
    file_name: str
    sheet_name: str
    total_rows: int
    total_columns: int
    columns: tuple[ColumnProfile, ...]
    categories: dict[Category, tuple[str, ...]]  # score 順
    recommended_fields: tuple[str, ...]
    key_fields: tuple[str, ...]
    template_suggestions: tuple[TemplateSuggestion, ...]
    analyzed_at: str
    sheets: tuple[str, ...] = ()
    category_summary: tuple[CategorySummary, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fileName": self.file_name,
            "sheetName": self.sheet_name,
            "sheets": list(self.sheets),
            "totalRows": self.total_rows,
            "totalColumns": self.total_columns,
            "columns": [c.to_dict() for c in self.columns],
            "categories": {cat.value: list(names) for cat, names in self.categories.items()},
            "categorySummary": [s.to_dict() for s in self.category_summary],
            "keyFields": list(self.key_fields),
            "recommendedFields": list(self.recommended_fields),
            "templateSuggestions": [t.to_dict() for t in self.template_suggestions],
            "analyzedAt": self.analyzed_at,
        }
