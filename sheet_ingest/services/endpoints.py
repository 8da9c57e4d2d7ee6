from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sheet_ingest.config.loader import default_config
from sheet_ingest.db.datastore import Datastore, connect_datastore
from sheet_ingest.errors import (
    ConfigurationError,
    FatalImportError,
    IngestError,
    SchemaMissingError,
    ValidationError,
)
from sheet_ingest.excel.reader import SheetData, normalize_sheet, read_workbook
from sheet_ingest.logging.error_log import ErrorLogBuffer
from sheet_ingest.logging.import_log import ImportLogSink
from sheet_ingest.models.config_models import IngestConfig, ProjectRecord, ResolvedCredentials
from sheet_ingest.models.import_batch import ImportBatch, ImportMode
from sheet_ingest.profiling.analyzer import analyze_table
from sheet_ingest.services.credentials import CredentialResolver
from sheet_ingest.services.orchestrator import abort_batch, run_import
from sheet_ingest.services.transformer import transform_rows

"""Request handlers for the analyze / import paths.

The web layer (routing, auth, multipart parsing) is external: it hands over
an Upload plus a project id and caller identity it has already validated.
Both handlers return plain dicts; errors are raised from the taxonomy in
sheet_ingest.errors and mapped with error_response().
"""

__all__ = [
    "Upload",
    "ImportRequest",
    "analyze_upload",
    "import_upload",
    "error_response",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Upload:
    file_name: str
    data: bytes
    size: int = 0

    @classmethod
    def from_path(cls, path: Path) -> Upload:
        data = path.read_bytes()
        return cls(file_name=path.name, data=data, size=len(data))


@dataclass(frozen=True)
class ImportRequest:
    upload: Upload
    project_id: str
    user_id: str | None = None
    sheet_name: str | None = None
    import_mode: str | ImportMode | None = "append"
    month: int | None = None
    year: int | None = None
    table_name: str | None = None


def _load_sheet(upload: Upload, sheet_name: str | None, cfg: IngestConfig) -> tuple[SheetData, list[str]]:
    if upload is None or not upload.data:
        raise ValidationError("No file uploaded")
    workbook = read_workbook(upload.data, upload.file_name)
    name, rows = workbook.raw_rows(sheet_name)
    return normalize_sheet(rows, name, cfg.analysis), workbook.sheet_names


def analyze_upload(upload: Upload, sheet_name: str | None = None, config: IngestConfig | None = None) -> dict[str, Any]:
    """Profile one sheet of an uploaded file. Read-only."""
    cfg = config or default_config()
    sheet, sheet_names = _load_sheet(upload, sheet_name, cfg)
    profile = analyze_table(sheet, file_name=upload.file_name, sheet_names=sheet_names, config=cfg)
    return {"success": True, **profile.to_dict()}


def _period(month: int | None, year: int | None) -> tuple[int, int]:
    now = datetime.now(UTC)
    month = month or now.month
    year = year or now.year
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid import month: {month}")
    return month, year


def import_upload(
    request: ImportRequest,
    project: ProjectRecord,
    *,
    resolver: CredentialResolver,
    log_sink: ImportLogSink,
    config: IngestConfig | None = None,
    datastore_factory: Callable[..., Datastore] = connect_datastore,
) -> dict[str, Any]:
    """Import one sheet into the project's target table.

    Caller access to ``request.project_id`` must already be verified.
    Returns the outcome dict, or the setup payload when the table is missing.
    """
    cfg = config or default_config()
    mode = ImportMode.parse(request.import_mode)
    month, year = _period(request.month, request.year)
    table = request.table_name or project.table_name or cfg.ingestion.default_table
    upload = request.upload

    sheet, _ = _load_sheet(upload, request.sheet_name, cfg)
    batch = ImportBatch(
        project_id=request.project_id,
        user_id=request.user_id,
        file_name=upload.file_name,
        file_size=upload.size or len(upload.data),
        target_table=table,
        import_mode=mode,
        import_month=month,
        import_year=year,
        sheet_name=sheet.sheet_name,
        error_cap=max(cfg.ingestion.error_detail_count, cfg.ingestion.response_error_count),
    )
    error_log = ErrorLogBuffer(cfg.ingestion.error_log_dir) if cfg.ingestion.error_log_dir else None
    layout = cfg.layout_for_table(table)

    try:
        records = transform_rows(
            sheet,
            project_id=request.project_id,
            batch_id=batch.batch_id,
            month=month,
            year=year,
            layout=layout,
        )
        credentials: ResolvedCredentials = resolver.resolve(project)
        datastore = datastore_factory(credentials, timeout=cfg.ingestion.request_timeout)
    except IngestError as e:
        # 挿入前の失敗もログに残す
        logger.error("import %s rejected before insertion: %s", batch.batch_id, e)
        abort_batch(batch, str(e), log_sink, error_log)
        raise
    except Exception as e:
        logger.error("import %s failed before insertion: %s", batch.batch_id, e)
        abort_batch(batch, str(e), log_sink, error_log)
        raise FatalImportError(str(e), batch_id=batch.batch_id) from e

    try:
        outcome = run_import(
            records,
            batch,
            datastore,
            log_sink=log_sink,
            config=cfg.ingestion,
            legacy_table=layout is not None,
            error_log=error_log,
        )
    finally:
        datastore.close()
    return outcome.to_dict()


def error_response(exc: BaseException) -> tuple[int, dict[str, Any]]:
    """Map an exception to (HTTP-equivalent status, response body)."""
    if isinstance(exc, SchemaMissingError):
        return exc.status_code, {
            "success": False,
            "needsSetup": True,
            "error": str(exc),
            "tableName": exc.table,
            "setupSql": exc.setup_sql,
        }
    if isinstance(exc, IngestError):
        body: dict[str, Any] = {"success": False, "error": str(exc)}
        if isinstance(exc, ConfigurationError) and exc.remediation:
            body["details"] = exc.remediation
        batch_id = getattr(exc, "batch_id", None)
        if batch_id:
            body["batchId"] = batch_id
        return exc.status_code, body
    logger.error("unhandled error: %s", exc)
    return 500, {"success": False, "error": "Internal server error"}
