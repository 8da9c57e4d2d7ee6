from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the spreadsheet profiling / ingestion engine.

These are the typed, immutable results of YAML loading in
sheet_ingest/config/loader.py. Everything here is read-only after process start;
request handlers receive these objects explicitly instead of reading globals.
"""


@dataclass(frozen=True)
class CentralStoreConfig:
    """Shared (central) datastore connection, loaded once at process start.

    Environment variables take precedence over YAML values
    (CENTRAL_DATASTORE_URL / CENTRAL_DATASTORE_SECRET / ENCRYPTION_KEY).
    """
    address: str | None = None
    secret: str | None = None  # 平文 (中央ストア用サービスキー)
    encryption_key: str | None = None  # プロジェクト別シークレットの復号キー


@dataclass(frozen=True)
class LegacyField:
    """One fixed-position column of a legacy spreadsheet layout."""
    name: str  # logical field name (e.g. "expected_accumulation")
    position: int  # 0-based column index in the sheet
    labels: tuple[str, ...] = ()  # header variants accepted at this position


@dataclass(frozen=True)
class LegacyLayout:
    """Versioned column-position mapping for a spreadsheet with unlabeled fixed order.

    Applied only when the import targets ``table_name``. With ``strict`` the
    header row is validated against ``labels`` before any row is transformed.
    """
    schema_id: str
    version: int
    table_name: str
    fields: tuple[LegacyField, ...]
    strict: bool = True

    def get_field(self, name: str) -> LegacyField | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None


@dataclass(frozen=True)
class AnalysisConfig:
    sample_rows: int = 1000
    header_scan_rows: int = 20
    header_min_cells: int = 3  # header row needs MORE than this many non-empty cells
    placeholder_prefix: str = "Column_"
    boolean_true_words: tuple[str, ...] = ("true", "yes", "1")
    boolean_false_words: tuple[str, ...] = ("false", "no", "0")
    patterns_file: str | None = None  # None = packaged default patterns
    detect_identifiers: bool = False  # True: unique `id` / `*_id` columns get the id type


@dataclass(frozen=True)
class ScoringConfig:
    category_weights: dict[str, float] = field(default_factory=dict)
    enum_bonus: float = 10
    number_bonus: float = 15
    non_system_bonus: float = 20
    fill_weight: float = 0.3
    cardinality_threshold: int = 1000
    cardinality_penalty: float = 10
    recommend_threshold: float = 50
    key_field_threshold: float = 60


@dataclass(frozen=True)
class IngestionConfig:
    statement_batch_size: int = 100
    structured_batch_size: int = 500
    default_table: str = "master_data"
    error_summary_count: int = 3  # import log error_message に連結する件数
    error_detail_count: int = 20  # import log error_details に保持する件数
    response_error_count: int = 10  # レスポンスに含める件数
    request_timeout: float = 30.0
    error_log_dir: str | None = None  # None = JSONL error log disabled


@dataclass(frozen=True)
class FinancialTemplateConfig:
    """Label variants used to locate the columns of the domain financial template."""
    accumulation_labels: tuple[str, ...] = ()
    deposit_labels: tuple[str, ...] = ()
    product_type_labels: tuple[str, ...] = ()
    manufacturer_labels: tuple[str, ...] = ()
    documents_date_labels: tuple[str, ...] = ()
    calculated_field_name: str = "סהכ_צפוי"
    calculated_field_display_name: str = 'סה"כ צפוי'


@dataclass(frozen=True)
class IngestConfig:
    """Root configuration object (immutable after load)."""
    central: CentralStoreConfig
    analysis: AnalysisConfig
    scoring: ScoringConfig
    ingestion: IngestionConfig
    financial_template: FinancialTemplateConfig
    legacy_layouts: tuple[LegacyLayout, ...] = ()

    def layout_for_table(self, table_name: str) -> LegacyLayout | None:
        for layout in self.legacy_layouts:
            if layout.table_name == table_name:
                return layout
        return None


@dataclass(frozen=True)
class ProjectRecord:
    """Tenant credential record, owned by project configuration storage.

    The ingestion pipeline only reads it and decrypts ``encrypted_secret``.
    """
    project_id: str
    name: str = ""
    datastore_url: str | None = None
    encrypted_secret: str | None = None  # "<iv hex>:<ciphertext hex>"
    table_name: str | None = None


@dataclass(frozen=True)
class ResolvedCredentials:
    """Routing decision for one import: where to write and with which secret."""
    address: str
    secret: str = field(repr=False)
    is_central: bool = True
