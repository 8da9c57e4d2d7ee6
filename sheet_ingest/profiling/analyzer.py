from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sheet_ingest.config.loader import default_config
from sheet_ingest.config.patterns import CategoryRule, load_category_rules
from sheet_ingest.excel.reader import SheetData, is_empty
from sheet_ingest.models.column_profile import Category, ColumnProfile, DataType
from sheet_ingest.models.config_models import IngestConfig
from sheet_ingest.models.table_profile import CATEGORY_INFO, CategorySummary, TableProfile
from sheet_ingest.profiling.inference import infer_category, infer_data_type
from sheet_ingest.profiling.scoring import rank_columns, score_column
from sheet_ingest.profiling.statistics import calculate_stats
from sheet_ingest.profiling.templates import suggest_templates

"""Column / table analyzer (analyze path).

analyze_column is a pure function of (name, values, position, config): the
same input always yields an identical ColumnProfile. It never raises; a
classifier failure degrades to {text, other}.
"""

__all__ = [
    "SAMPLE_VALUE_COUNT",
    "RECOMMENDED_LIMIT",
    "KEY_FIELD_LIMIT",
    "format_display_name",
    "analyze_column",
    "analyze_table",
]

logger = logging.getLogger(__name__)

SAMPLE_VALUE_COUNT = 5
RECOMMENDED_LIMIT = 15
KEY_FIELD_LIMIT = 8

_CAMEL = re.compile(r"([a-z])([A-Z])")


def format_display_name(name: str) -> str:
    return _CAMEL.sub(r"\1 \2", name.replace("_", " ")).strip()


def _rules_for(config: IngestConfig) -> tuple[CategoryRule, ...]:
    return load_category_rules(config.analysis.patterns_file)


def analyze_column(
    name: str,
    values: Sequence[Any],
    position: int = 0,
    config: IngestConfig | None = None,
    rules: Sequence[CategoryRule] | None = None,
) -> ColumnProfile:
    cfg = config or default_config()
    try:
        data_type = infer_data_type(values, name, cfg.analysis)
        category = infer_category(name, _rules_for(cfg) if rules is None else rules)
    except Exception as e:  # pragma: no cover
        logger.debug("classification failed for column %r: %s", name, e)
        data_type, category = DataType.TEXT, Category.OTHER

    stats = calculate_stats(values, data_type)
    score = score_column(category, data_type, stats, cfg.scoring)
    samples = tuple(v for v in values if not is_empty(v))[:SAMPLE_VALUE_COUNT]
    return ColumnProfile(
        name=name,
        display_name=format_display_name(name),
        data_type=data_type,
        category=category,
        stats=stats,
        sample_values=samples,
        recommendation_score=score,
        is_recommended=score >= cfg.scoring.recommend_threshold,
        position=position,
    )


def analyze_table(
    sheet: SheetData,
    *,
    file_name: str,
    sheet_names: Sequence[str] = (),
    config: IngestConfig | None = None,
) -> TableProfile:
    cfg = config or default_config()
    rules = _rules_for(cfg)
    columns = [
        analyze_column(header, sheet.column(i), i, cfg, rules)
        for i, header in enumerate(sheet.headers)
    ]
    ranked = rank_columns(columns)

    buckets: dict[Category, list[ColumnProfile]] = {c: [] for c in Category}
    for col in ranked:
        buckets[col.category].append(col)

    recommended = tuple(c.name for c in ranked if c.is_recommended)[:RECOMMENDED_LIMIT]
    key_fields = tuple(
        c.name for c in ranked if c.recommendation_score >= cfg.scoring.key_field_threshold
    )[:KEY_FIELD_LIMIT]

    summary = sorted(
        (
            CategorySummary(
                category=cat,
                icon=CATEGORY_INFO[cat][0],
                label=CATEGORY_INFO[cat][1],
                count=len(cols),
                columns=tuple(c.name for c in cols),
            )
            for cat, cols in buckets.items()
            if cols
        ),
        key=lambda s: -s.count,
    )
    templates = suggest_templates(buckets, recommended, columns, cfg.financial_template)

    logger.info(
        "analyzed %s [%s]: %d rows, %d columns, %d recommended",
        file_name, sheet.sheet_name, len(sheet.rows), len(columns), len(recommended),
    )
    return TableProfile(
        file_name=file_name,
        sheet_name=sheet.sheet_name,
        total_rows=len(sheet.rows),
        total_columns=len(columns),
        columns=tuple(columns),
        categories={cat: tuple(c.name for c in cols) for cat, cols in buckets.items()},
        recommended_fields=recommended,
        key_fields=key_fields,
        template_suggestions=tuple(templates),
        analyzed_at=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        sheets=tuple(sheet_names),
        category_summary=tuple(summary),
    )
