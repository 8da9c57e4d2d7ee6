from __future__ import annotations

from collections.abc import Iterable

from sheet_ingest.models.column_profile import Category, ColumnProfile, ColumnStats, DataType
from sheet_ingest.models.config_models import ScoringConfig

"""Recommendation scorer.

score = category_weight + (100 - null%) * fill_weight + type_bonus
        - cardinality_penalty + non_system_bonus (category != system)
clamped to [0, 100], rounded to one decimal.
"""

__all__ = [
    "DEFAULT_CATEGORY_WEIGHTS",
    "score_column",
    "rank_columns",
]

DEFAULT_CATEGORY_WEIGHTS: dict[str, float] = {
    "financial": 25,
    "status": 20,
    "people": 18,
    "dates": 15,
    "companies": 15,
    "contact": 12,
    "identifiers": 10,
    "other": 5,
    "system": 0,
}


def score_column(
    category: Category,
    data_type: DataType,
    stats: ColumnStats,
    scoring: ScoringConfig | None = None,
) -> float:
    cfg = scoring or ScoringConfig()
    weights = cfg.category_weights or DEFAULT_CATEGORY_WEIGHTS
    score = float(weights.get(category.value, DEFAULT_CATEGORY_WEIGHTS.get(category.value, 0)))
    score += max(0, 100 - stats.null_percentage) * cfg.fill_weight
    if data_type is DataType.ENUM:
        score += cfg.enum_bonus
    elif data_type is DataType.NUMBER:
        score += cfg.number_bonus
    if stats.unique_count > cfg.cardinality_threshold:
        score -= cfg.cardinality_penalty
    if category is not Category.SYSTEM:
        score += cfg.non_system_bonus
    return round(min(100.0, max(0.0, score)), 1)


def rank_columns(columns: Iterable[ColumnProfile]) -> list[ColumnProfile]:
    """Score descending; ties keep the original column order."""
    return sorted(columns, key=lambda c: (-c.recommendation_score, c.position))
