from __future__ import annotations

import math
import re
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta
from typing import Any

from dateutil import parser as date_parser

from sheet_ingest.config.patterns import CategoryRule, load_category_rules
from sheet_ingest.excel.reader import is_empty
from sheet_ingest.models.column_profile import Category, DataType
from sheet_ingest.models.config_models import AnalysisConfig

"""Type & category inference.

Type: first match wins over the non-empty sample
    boolean -> date (>=80%) -> number (>=80%) -> id -> enum -> text
    empty sample -> unknown
Category: name based only, ordered rules from patterns.yml, no match -> other.

The value helpers (clean_number, parse_date, as_text) are shared with the
statistics calculator and the row transformer.
"""

__all__ = [
    "DOMINANCE_RATIO",
    "ENUM_MAX_UNIQUE",
    "ENUM_MAX_RATIO",
    "MIN_YEAR",
    "MAX_YEAR",
    "as_text",
    "clean_number",
    "parse_date",
    "is_date_like",
    "is_boolean_literal",
    "infer_data_type",
    "infer_category",
]

DOMINANCE_RATIO = 0.8
ENUM_MAX_UNIQUE = 20
ENUM_MAX_RATIO = 0.3
MIN_YEAR = 1900
MAX_YEAR = 2100

# 通貨記号 / パーセント / 桁区切り / 空白
_NUMBER_NOISE = re.compile(r"[,₪$€£%\s]")
_HAS_DIGIT = re.compile(r"\d")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")
_DMY_DATE = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2,4})(?!\d)")
# 5 桁以上の年 (例: 235451-01-01) は日付として扱わない
_OVERSIZED_YEAR = re.compile(r"^\d{5,}[/.\-]")
_DATE_LIKE = (
    re.compile(r"^\d{4}-\d{2}-\d{2}"),
    re.compile(r"^\d{2}/\d{2}/\d{4}"),
    re.compile(r"^\d{2}\.\d{2}\.\d{4}"),
    re.compile(r"^\d{1,2}-\d{1,2}-\d{2}"),
)
# Excel シリアル値の起点 (1900 うるう年バグ込み)
_EXCEL_EPOCH = datetime(1899, 12, 30)
_IDENTIFIER_NAME = re.compile(r"(^id$|_id$)", re.IGNORECASE)


def as_text(value: Any) -> str:
    """String normalization used for unique counts and value distributions."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime | date):
        return value.isoformat()
    return str(value).strip() if isinstance(value, str) else str(value)


def clean_number(value: Any) -> float | None:
    """Parse a finite number, stripping currency/percent/thousands noise.

    Booleans are not numbers. Returns None when parsing fails.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        num = float(value)
    elif isinstance(value, str):
        cleaned = _NUMBER_NOISE.sub("", value)
        if not cleaned:
            return None
        try:
            num = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    return num if math.isfinite(num) else None


def _two_digit_year(year: int) -> int:
    if year >= 100:
        return year
    return 2000 + year if year < 70 else 1900 + year


def parse_date(value: Any, *, allow_serial: bool = False) -> datetime | None:
    """Parse a cell into a datetime.

    - datetime / date instances as-is
    - ISO ``YYYY-MM-DD...``; day-first ``DD/MM/YYYY``, ``DD.MM.YYYY``, ``D-M-YY``
    - anything else containing a digit via dateutil
    - numbers only with ``allow_serial`` (Excel serial day count)
    The year range is NOT enforced here.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int | float):
        if not allow_serial or not math.isfinite(value) or value <= 0:
            return None
        try:
            return _EXCEL_EPOCH + timedelta(days=float(value))
        except OverflowError:
            return None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text or not _HAS_DIGIT.search(text):
        return None
    if _OVERSIZED_YEAR.match(text):
        return None
    try:
        m = _ISO_DATE.match(text)
        if m:
            try:
                return datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return datetime(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        m = _DMY_DATE.match(text)
        if m:
            day, month, year = (int(g) for g in m.groups())
            return datetime(_two_digit_year(year), month, day)
        if clean_number(text) is not None:
            # 純粋な数値文字列は日付扱いしない
            return None
        return date_parser.parse(text)
    except (ValueError, OverflowError):
        # dateutil.parser.ParserError は ValueError のサブクラス
        return None


def _in_year_range(dt: datetime) -> bool:
    return MIN_YEAR <= dt.year <= MAX_YEAR


def is_date_like(value: Any) -> bool:
    if isinstance(value, datetime | date):
        return True
    if not isinstance(value, str):
        return False
    text = value.strip()
    if any(p.match(text) for p in _DATE_LIKE):
        return True
    parsed = parse_date(text)
    return parsed is not None and _in_year_range(parsed)


def is_boolean_literal(
    value: Any,
    true_words: Iterable[str] = (),
    false_words: Iterable[str] = (),
) -> bool:
    if isinstance(value, bool):
        return True
    if isinstance(value, int | float):
        return value in (0, 1)
    if isinstance(value, str):
        word = value.strip().lower()
        return word in {w.lower() for w in true_words} or word in {w.lower() for w in false_words}
    return False


def infer_data_type(
    values: Sequence[Any],
    column_name: str = "",
    analysis: AnalysisConfig | None = None,
) -> DataType:
    """Classify a sampled column. Only the first ``sample_rows`` values are considered.

    First match wins: boolean, date, number, enum, text. With
    ``analysis.detect_identifiers`` a column named ``id`` or ``*_id`` whose
    sampled values are all distinct is typed ``id`` (checked after number).
    """
    cfg = analysis or AnalysisConfig()
    sample = [v for v in values[: cfg.sample_rows] if not is_empty(v)]
    if not sample:
        return DataType.UNKNOWN
    n = len(sample)

    if all(is_boolean_literal(v, cfg.boolean_true_words, cfg.boolean_false_words) for v in sample):
        return DataType.BOOLEAN
    if sum(1 for v in sample if is_date_like(v)) >= n * DOMINANCE_RATIO:
        return DataType.DATE
    if sum(1 for v in sample if clean_number(v) is not None) >= n * DOMINANCE_RATIO:
        return DataType.NUMBER

    unique = {as_text(v) for v in sample}
    if cfg.detect_identifiers and _IDENTIFIER_NAME.search(column_name.strip()) and len(unique) == n:
        return DataType.ID
    if len(unique) <= ENUM_MAX_UNIQUE and len(unique) < n * ENUM_MAX_RATIO:
        return DataType.ENUM
    return DataType.TEXT


def infer_category(column_name: str, rules: Sequence[CategoryRule] | None = None) -> Category:
    rules = load_category_rules() if rules is None else rules
    for rule in rules:
        if rule.matches(column_name):
            return rule.category
    return Category.OTHER
