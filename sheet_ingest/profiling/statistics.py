from __future__ import annotations

import math
from collections import Counter
from collections.abc import Sequence
from typing import Any

from sheet_ingest.excel.reader import is_empty
from sheet_ingest.models.column_profile import ColumnStats, DataType
from sheet_ingest.profiling.inference import as_text, clean_number

"""Column statistics over the entire column (not just the inference sample)."""

__all__ = [
    "DISTRIBUTION_LIMIT",
    "calculate_stats",
    "percentage",
]

DISTRIBUTION_LIMIT = 50


def percentage(part: int, total: int) -> int:
    """Half-up rounded percentage, 0 when total is 0."""
    if total <= 0:
        return 0
    return int(math.floor(part * 100 / total + 0.5))


def calculate_stats(values: Sequence[Any], data_type: DataType) -> ColumnStats:
    count = len(values)
    non_null = [v for v in values if not is_empty(v)]
    null_count = count - len(non_null)
    texts = [as_text(v) for v in non_null]
    unique = list(dict.fromkeys(texts))  # 出現順を維持

    num_sum = num_avg = num_min = num_max = None
    if data_type is DataType.NUMBER:
        # パース失敗は集計から除外 (0 扱いしない)
        numbers = [n for n in (clean_number(v) for v in non_null) if n is not None]
        if numbers:
            num_sum = math.fsum(numbers)
            num_avg = num_sum / len(numbers)
            num_min = min(numbers)
            num_max = max(numbers)

    unique_values = distribution = None
    if data_type is DataType.ENUM or (data_type is DataType.TEXT and len(unique) <= DISTRIBUTION_LIMIT):
        unique_values = tuple(unique[:DISTRIBUTION_LIMIT])
        distribution = dict(Counter(texts).most_common(DISTRIBUTION_LIMIT))

    return ColumnStats(
        count=count,
        null_count=null_count,
        null_percentage=percentage(null_count, count),
        unique_count=len(unique),
        sum=num_sum,
        avg=num_avg,
        min=num_min,
        max=num_max,
        unique_values=unique_values,
        value_distribution=distribution,
    )
