"""Domain models for the spreadsheet profiling / ingestion engine.

Profiles (column / table) are request scoped; ImportBatch is the only model
whose state is persisted (through the import log sink).
"""

from .column_profile import Category, ColumnProfile, ColumnStats, DataType
from .config_models import (
    CentralStoreConfig,
    IngestConfig,
    LegacyLayout,
    ProjectRecord,
    ResolvedCredentials,
)
from .error_record import ErrorRecord
from .import_batch import BatchStatus, ImportBatch, ImportMode, ImportOutcome, SetupRequired
from .row_data import LegacyValues, TransformedRecord
from .table_profile import CalculatedField, ChartConfig, TableProfile, TemplateSuggestion

__all__ = [
    # Profiling models
    "Category",
    "ColumnProfile",
    "ColumnStats",
    "DataType",
    "CalculatedField",
    "ChartConfig",
    "TableProfile",
    "TemplateSuggestion",
    # Configuration models
    "CentralStoreConfig",
    "IngestConfig",
    "LegacyLayout",
    "ProjectRecord",
    "ResolvedCredentials",
    # Ingestion models
    "BatchStatus",
    "ImportBatch",
    "ImportMode",
    "ImportOutcome",
    "SetupRequired",
    "ErrorRecord",
    "LegacyValues",
    "TransformedRecord",
]
