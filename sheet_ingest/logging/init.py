from __future__ import annotations

import logging
import sys
from typing import IO, Any

"""Logging setup for the ingestion service.

Every module logs under the "sheet_ingest" hierarchy and shares the single
stdout handler installed here. Lines read ``<LABEL> [<batch id>] <message>``
where the batch id is present only for records emitted through
``batch_logger``. SUMMARY (25) carries the one-line result of a finished
import.
"""

__all__ = [
    "SUMMARY_LEVEL",
    "LOGGER_NAME",
    "setup_logging",
    "get_logger",
    "batch_logger",
    "log_summary",
    "reset_logging",
]

SUMMARY_LEVEL = 25
LOGGER_NAME = "sheet_ingest"

_LABELS = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "CRITICAL",
    SUMMARY_LEVEL: "SUMMARY",
}

_configured: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        label = _LABELS.get(record.levelno, record.levelname)
        batch_id = getattr(record, "batch_id", None)
        if batch_id:
            return f"{label} [{batch_id}] {record.getMessage()}"
        return f"{label} {record.getMessage()}"


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name == "WARN":
        name = "WARNING"
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        raise ValueError(f"unknown log level: {level}")
    return resolved


def setup_logging(level: int | str = logging.INFO, stream: IO[str] | None = None) -> logging.Logger:
    """Install the labeled handler on the package logger.

    Idempotent: later calls return the already configured logger unchanged.
    ``level`` accepts a logging constant or a name such as "warn".
    """
    global _configured
    if _configured is not None:
        return _configured

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_resolve_level(level))
    for existing in list(logger.handlers):
        logger.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)
    # root に流さない (二重出力防止)
    logger.propagate = False

    _configured = logger
    return logger


def get_logger() -> logging.Logger:
    return _configured or setup_logging()


def batch_logger(name: str, batch_id: str) -> logging.LoggerAdapter[Any]:
    """Module logger whose records carry ``batch_id`` for the formatter."""
    return logging.LoggerAdapter(logging.getLogger(name), {"batch_id": batch_id})


def log_summary(line: str) -> None:
    get_logger().log(SUMMARY_LEVEL, line)


def reset_logging() -> None:
    """Drop the configured handler (tests)."""
    global _configured
    if _configured is not None:
        for existing in list(_configured.handlers):
            _configured.removeHandler(existing)
    _configured = None
