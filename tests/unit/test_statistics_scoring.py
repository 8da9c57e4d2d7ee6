from __future__ import annotations

import pytest

from sheet_ingest.models.column_profile import Category, ColumnProfile, ColumnStats, DataType
from sheet_ingest.models.config_models import ScoringConfig
from sheet_ingest.profiling.analyzer import analyze_column, format_display_name
from sheet_ingest.profiling.scoring import rank_columns, score_column
from sheet_ingest.profiling.statistics import DISTRIBUTION_LIMIT, calculate_stats, percentage


def test_percentage_half_up():
    assert percentage(1, 3) == 33
    assert percentage(1, 8) == 13
    assert percentage(0, 0) == 0
    assert percentage(5, 5) == 100


def test_number_stats_skip_unparseable_values():
    stats = calculate_stats(["10", "20", None, "abc", ""], DataType.NUMBER)
    assert stats.count == 5
    assert stats.null_count == 2
    assert stats.null_percentage == 40
    assert stats.unique_count == 3
    assert stats.sum == 30
    assert stats.avg == 15
    assert stats.min == 10
    assert stats.max == 20
    assert stats.unique_values is None


def test_null_invariant():
    values = [None, "a", "", "b", "a", "   "]
    stats = calculate_stats(values, DataType.TEXT)
    assert stats.null_count + stats.non_null_count == len(values)
    assert 0 <= stats.null_percentage <= 100


def test_enum_distribution_in_first_appearance_order():
    stats = calculate_stats(["b", "a", "b", "b"], DataType.ENUM)
    assert stats.unique_values == ("b", "a")
    assert stats.value_distribution == {"b": 3, "a": 1}
    assert stats.to_dict()["valueDistribution"] == {"b": 3, "a": 1}


def test_high_cardinality_text_has_no_distribution():
    values = [f"v{i}" for i in range(DISTRIBUTION_LIMIT + 1)]
    stats = calculate_stats(values, DataType.TEXT)
    assert stats.unique_values is None
    assert stats.value_distribution is None


def test_stats_to_dict_camel_case():
    d = calculate_stats(["1", "2"], DataType.NUMBER).to_dict()
    assert d["nullCount"] == 0
    assert d["uniqueCount"] == 2
    assert d["sum"] == 3


def _stats(count: int, nulls: int, unique: int = 1) -> ColumnStats:
    return ColumnStats(count=count, null_count=nulls, null_percentage=percentage(nulls, count), unique_count=unique)


def test_system_column_all_null_scores_low():
    score = score_column(Category.SYSTEM, DataType.UNKNOWN, _stats(10, 10, 0))
    assert score <= 30


def test_full_financial_number_column():
    # 25 + 100 * 0.3 + 15 + 20
    assert score_column(Category.FINANCIAL, DataType.NUMBER, _stats(10, 0)) == 90


def test_cardinality_penalty():
    low = score_column(Category.OTHER, DataType.TEXT, _stats(2000, 0, 1000))
    high = score_column(Category.OTHER, DataType.TEXT, _stats(2000, 0, 1001))
    assert low - high == pytest.approx(10)


def test_score_clamped():
    cfg = ScoringConfig(non_system_bonus=200)
    assert score_column(Category.FINANCIAL, DataType.NUMBER, _stats(1, 0), cfg) == 100
    cfg = ScoringConfig(category_weights={"other": -500})
    assert score_column(Category.OTHER, DataType.TEXT, _stats(1, 0), cfg) == 0


def test_rank_columns_ties_keep_original_order():
    a = analyze_column("first", ["x", "y"], position=0)
    b = analyze_column("second", ["x", "y"], position=1)
    c = analyze_column("Amount", ["1", "2"], position=2)
    ranked = rank_columns([b, a, c])
    assert [col.name for col in ranked] == ["Amount", "first", "second"]


def test_analyze_column_is_deterministic():
    values = ["100", "200", None, "300"]
    first = analyze_column("Amount", values, 3)
    second = analyze_column("Amount", values, 3)
    assert first == second
    assert isinstance(first, ColumnProfile)
    assert first.data_type is DataType.NUMBER
    assert first.category is Category.FINANCIAL
    assert first.sample_values == ("100", "200", "300")
    assert first.is_recommended


def test_format_display_name():
    assert format_display_name("first_name") == "first name"
    assert format_display_name("firstName") == "first Name"
