from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import yaml

from sheet_ingest.models.column_profile import Category
from sheet_ingest.config.loader import ConfigError

"""Column-name category dictionary loader.

patterns.yml is an ordered list of (category, regex list) pairs; the list
order is the evaluation order. A deployment can point
``analysis.patterns_file`` at its own file to add domains without code
changes.
"""

__all__ = [
    "CategoryRule",
    "PATTERNS_PATH",
    "load_category_rules",
]

PATTERNS_PATH = Path(__file__).parent / "patterns.yml"


@dataclass(frozen=True)
class CategoryRule:
    category: Category
    matchers: tuple[re.Pattern[str], ...]

    def matches(self, column_name: str) -> bool:
        return any(m.search(column_name) for m in self.matchers)


def _parse_rules(data: object, source: Path) -> tuple[CategoryRule, ...]:
    if not isinstance(data, dict) or not isinstance(data.get("categories"), list):
        raise ConfigError(f"patterns file must define a 'categories' list: {source}")
    rules: list[CategoryRule] = []
    for entry in data["categories"]:
        try:
            category = Category(entry["category"])
            matchers = tuple(re.compile(p, re.IGNORECASE) for p in entry.get("patterns") or [])
        except (KeyError, TypeError, ValueError, re.error) as e:
            raise ConfigError(f"invalid category rule in {source}: {e}") from e
        if category is Category.OTHER:
            # other はフォールバック専用
            continue
        rules.append(CategoryRule(category=category, matchers=matchers))
    return tuple(rules)


@lru_cache(maxsize=8)
def load_category_rules(path: str | None = None) -> tuple[CategoryRule, ...]:
    """Load (and cache) the ordered category rules.

    ``path=None`` loads the packaged patterns.yml.
    """
    source = Path(path) if path else PATTERNS_PATH
    if not source.exists():
        raise ConfigError(f"patterns file not found: {source}")
    try:
        data = yaml.safe_load(source.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    return _parse_rules(data, source)
