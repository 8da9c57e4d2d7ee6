from __future__ import annotations

from collections.abc import Mapping, Sequence

from sheet_ingest.models.column_profile import Category, ColumnProfile
from sheet_ingest.models.config_models import FinancialTemplateConfig
from sheet_ingest.models.table_profile import CalculatedField, ChartConfig, TemplateSuggestion

"""Template synthesizer.

Output order:
1. domain financial template (only when an amount column is located)
2. co-occurrence templates: commission / process / people
3. general summary (always)
4. custom, empty (always)
Templates are not required to be disjoint.
"""

__all__ = [
    "GENERAL_TEMPLATE_SIZE",
    "find_column",
    "suggest_templates",
]

GENERAL_TEMPLATE_SIZE = 15

Buckets = Mapping[Category, Sequence[ColumnProfile]]


def find_column(columns: Sequence[ColumnProfile], labels: Sequence[str]) -> str | None:
    """First column whose name contains a label (labels tried in order, case-insensitive)."""
    for label in labels:
        needle = label.lower()
        for col in columns:
            if needle in col.name.lower():
                return col.name
    return None


def _names(buckets: Buckets, category: Category, n: int) -> list[str]:
    return [c.name for c in list(buckets.get(category, ()))[:n]]


def _dedupe(names: list[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(names))


def _financial_template(
    columns: Sequence[ColumnProfile], cfg: FinancialTemplateConfig
) -> TemplateSuggestion | None:
    accumulation = find_column(columns, cfg.accumulation_labels)
    deposit = find_column(columns, cfg.deposit_labels)
    if not (accumulation or deposit):
        return None
    product_type = find_column(columns, cfg.product_type_labels)
    manufacturer = find_column(columns, cfg.manufacturer_labels)
    doc_date = find_column(columns, cfg.documents_date_labels)

    cards = [c for c in (accumulation, deposit) if c]
    filters = [c for c in (product_type, manufacturer, doc_date) if c]

    calculated: list[CalculatedField] = []
    if accumulation and deposit:
        calculated.append(
            CalculatedField(
                name=cfg.calculated_field_name,
                display_name=cfg.calculated_field_display_name,
                formula=f"{accumulation} + {deposit}",
                source_columns=(accumulation, deposit),
                operation="sum",
            )
        )
    value_column = cfg.calculated_field_name if calculated else cards[0]

    charts: list[ChartConfig] = []
    if manufacturer:
        charts.append(ChartConfig("pie", 'סה"כ צפוי לפי יצרן', value_column, manufacturer))
    if product_type:
        charts.append(ChartConfig("bar", 'סה"כ צפוי לפי סוג מוצר', value_column, product_type))

    return TemplateSuggestion(
        id="financial",
        name="דוח פיננסי",
        icon="💎",
        description="צבירה צפויה, הפקדות, יצרנים וסוגי מוצרים",
        columns=tuple(cards + filters),
        card_columns=tuple(cards),
        filter_columns=tuple(filters),
        calculated_fields=tuple(calculated) or None,
        charts=tuple(charts) or None,
    )


def _co_occurrence_templates(buckets: Buckets) -> list[TemplateSuggestion]:
    def has(category: Category, n: int = 1) -> bool:
        return len(buckets.get(category, ())) >= n

    out: list[TemplateSuggestion] = []
    if has(Category.FINANCIAL, 2) and has(Category.STATUS) and has(Category.DATES):
        out.append(
            TemplateSuggestion(
                id="commission",
                name="דוח עמלות",
                icon="💰",
                description="סיכום נתונים כספיים עם סטטוסים ותאריכים",
                columns=_dedupe(
                    _names(buckets, Category.FINANCIAL, 4)
                    + _names(buckets, Category.STATUS, 2)
                    + _names(buckets, Category.DATES, 2)
                    + _names(buckets, Category.PEOPLE, 2)
                    + _names(buckets, Category.COMPANIES, 2)
                ),
                card_columns=tuple(_names(buckets, Category.FINANCIAL, 3)),
                filter_columns=tuple(
                    _names(buckets, Category.STATUS, 2)
                    + _names(buckets, Category.COMPANIES, 1)
                    + _names(buckets, Category.DATES, 1)
                ),
            )
        )
    if has(Category.IDENTIFIERS) and has(Category.STATUS):
        out.append(
            TemplateSuggestion(
                id="process",
                name="דוח תהליכים",
                icon="📊",
                description="מעקב תהליכים וסטטוסים",
                columns=_dedupe(
                    _names(buckets, Category.IDENTIFIERS, 2)
                    + _names(buckets, Category.STATUS, 2)
                    + _names(buckets, Category.DATES, 2)
                    + _names(buckets, Category.PEOPLE, 2)
                ),
                card_columns=tuple(_names(buckets, Category.IDENTIFIERS, 1)),
                filter_columns=tuple(
                    _names(buckets, Category.STATUS, 2) + _names(buckets, Category.DATES, 1)
                ),
            )
        )
    if has(Category.PEOPLE) and has(Category.CONTACT):
        out.append(
            TemplateSuggestion(
                id="people",
                name="דוח אנשי קשר",
                icon="👥",
                description="רשימת אנשים ופרטי התקשרות",
                columns=_dedupe(
                    _names(buckets, Category.PEOPLE, 4)
                    + _names(buckets, Category.CONTACT, 3)
                    + _names(buckets, Category.COMPANIES, 2)
                    + _names(buckets, Category.STATUS, 1)
                ),
                card_columns=(),
                filter_columns=tuple(
                    _names(buckets, Category.COMPANIES, 1) + _names(buckets, Category.STATUS, 1)
                ),
            )
        )
    return out


def suggest_templates(
    buckets: Buckets,
    recommended_fields: Sequence[str],
    columns: Sequence[ColumnProfile],
    financial: FinancialTemplateConfig | None = None,
) -> list[TemplateSuggestion]:
    """Build template suggestions.

    Parameters
    ----------
    buckets: category -> columns, each bucket ordered by score
    recommended_fields: recommended column names, ranked
    columns: all columns in original order (financial label lookup)
    financial: label variants for the domain financial template
    """
    suggestions: list[TemplateSuggestion] = []
    fin = _financial_template(columns, financial or FinancialTemplateConfig())
    if fin is not None:
        suggestions.append(fin)
    suggestions.extend(_co_occurrence_templates(buckets))
    suggestions.append(
        TemplateSuggestion(
            id="general",
            name="סיכום כללי",
            icon="📈",
            description=f"{GENERAL_TEMPLATE_SIZE} העמודות המומלצות ביותר",
            columns=tuple(recommended_fields[:GENERAL_TEMPLATE_SIZE]),
            card_columns=tuple(_names(buckets, Category.FINANCIAL, 3)),
            filter_columns=tuple(_names(buckets, Category.STATUS, 3)),
        )
    )
    suggestions.append(
        TemplateSuggestion(
            id="custom",
            name="מותאם אישית",
            icon="⚙️",
            description="בחר עמודות לפי קטגוריה",
        )
    )
    return suggestions
