from __future__ import annotations

import json
import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from dotenv import load_dotenv
from jsonschema.exceptions import ValidationError

from sheet_ingest.models.config_models import (
    AnalysisConfig,
    CentralStoreConfig,
    FinancialTemplateConfig,
    IngestConfig,
    IngestionConfig,
    LegacyField,
    LegacyLayout,
    ScoringConfig,
)

"""Config loader.

Responsibilities:
- Load packaged defaults (defaults.yml) and overlay config/ingest.yml per section
- Validate both against config_schema.json
- Apply environment overrides for the central datastore (.env via python-dotenv)
- Build the immutable IngestConfig handed to request handlers
"""

_CONFIG_DIR = Path(__file__).parent
SCHEMA_PATH = _CONFIG_DIR / "config_schema.json"
DEFAULTS_PATH = _CONFIG_DIR / "defaults.yml"
DEFAULT_CONFIG_PATH = Path("config/ingest.yml")

ENV_CENTRAL_URL = "CENTRAL_DATASTORE_URL"
ENV_CENTRAL_SECRET = "CENTRAL_DATASTORE_SECRET"
ENV_ENCRYPTION_KEY = "ENCRYPTION_KEY"

_SECTIONS = ("central", "analysis", "scoring", "ingestion", "financial_template")


class ConfigError(Exception):
    pass


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")
    return data


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the packaged JSON schema.

    Raises:
        ConfigError: schema file missing / not valid JSON, or the data fails
            validation (unknown keys, wrong types, missing required keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _merge(defaults: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for section in _SECTIONS:
        base = dict(defaults.get(section) or {})
        base.update(override.get(section) or {})
        merged[section] = base
    # legacy_layouts はリスト全体で置き換え (部分マージしない)
    merged["legacy_layouts"] = override.get("legacy_layouts", defaults.get("legacy_layouts", []))
    return merged


def _load_env_file(path: Path, override: bool = False) -> None:
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _build_layouts(raw: list[dict[str, Any]]) -> tuple[LegacyLayout, ...]:
    layouts = []
    for item in raw:
        fields = tuple(
            LegacyField(name=f["name"], position=int(f["position"]), labels=tuple(f.get("labels", [])))
            for f in item["fields"]
        )
        layouts.append(
            LegacyLayout(
                schema_id=item["schema_id"],
                version=int(item["version"]),
                table_name=item["table_name"],
                fields=fields,
                strict=bool(item.get("strict", True)),
            )
        )
    return tuple(layouts)


def build_config(data: dict[str, Any], environ: Mapping[str, str] | None = None) -> IngestConfig:
    """Build IngestConfig from an already merged + validated dict."""
    env = os.environ if environ is None else environ
    central_raw = data["central"]
    central = CentralStoreConfig(
        address=env.get(ENV_CENTRAL_URL) or central_raw.get("address"),
        secret=env.get(ENV_CENTRAL_SECRET) or central_raw.get("secret"),
        encryption_key=env.get(ENV_ENCRYPTION_KEY) or central_raw.get("encryption_key"),
    )
    analysis_raw = dict(data["analysis"])
    analysis_raw["boolean_true_words"] = tuple(analysis_raw.get("boolean_true_words", ()))
    analysis_raw["boolean_false_words"] = tuple(analysis_raw.get("boolean_false_words", ()))
    ingestion_raw = dict(data["ingestion"])
    ingestion_raw["request_timeout"] = float(ingestion_raw.get("request_timeout", 30.0))
    fin_raw = {
        k: (tuple(v) if isinstance(v, list) else v) for k, v in data["financial_template"].items()
    }
    return IngestConfig(
        central=central,
        analysis=AnalysisConfig(**analysis_raw),
        scoring=ScoringConfig(**data["scoring"]),
        ingestion=IngestionConfig(**ingestion_raw),
        financial_template=FinancialTemplateConfig(**fin_raw),
        legacy_layouts=_build_layouts(data.get("legacy_layouts") or []),
    )


def load_config(
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    env_file: Path | None = Path(".env"),
) -> IngestConfig:
    """Load the process-wide configuration.

    ``path`` given explicitly must exist. With ``path=None`` the default
    location is used if present, otherwise packaged defaults only.
    """
    if path is not None and not path.exists():
        raise ConfigError(f"config file not found: {path}")
    if path is None and DEFAULT_CONFIG_PATH.exists():
        path = DEFAULT_CONFIG_PATH

    defaults = _read_yaml(DEFAULTS_PATH)
    override = _read_yaml(path) if path is not None else {}
    _validate_config_schema(override)
    merged = _merge(defaults, override)
    _validate_config_schema(merged)

    if env_file is not None and environ is None:
        _load_env_file(env_file)
    return build_config(merged, environ)


@lru_cache(maxsize=1)
def default_config() -> IngestConfig:
    """Packaged defaults only; no files, no environment."""
    merged = _merge(_read_yaml(DEFAULTS_PATH), {})
    _validate_config_schema(merged)
    return build_config(merged, {})
