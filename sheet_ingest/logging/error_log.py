from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime
from pathlib import Path

from sheet_ingest.models.error_record import ErrorRecord

"""JSON Lines log of rejected sub-batches.

Records are held in memory during the run and appended to
``<logs_dir>/errors-YYYYMMDD-HHMMSS.log`` (UTC) when the run is persisted.
The file is only created when at least one sub-batch failed.
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
]

DEFAULT_LOGS_DIR = Path("logs")


class ErrorLogBuffer:
    # 1 リクエスト = 1 ワーカーなのでロックなし
    def __init__(self, logs_dir: Path | str | None = None) -> None:
        self.logs_dir = Path(logs_dir) if logs_dir else DEFAULT_LOGS_DIR
        self._pending: list[ErrorRecord] = []
        self._path: Path | None = None
        self.written = 0

    def append(self, record: ErrorRecord) -> None:
        self._pending.append(record)

    def __len__(self) -> int:
        return len(self._pending)

    def counts_by_type(self) -> dict[str, int]:
        return dict(Counter(r.error_type for r in self._pending))

    def _target(self) -> Path:
        if self._path is None:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
            self._path = self.logs_dir / f"errors-{stamp}.log"
        return self._path

    def flush(self) -> Path | None:
        """Append pending records; returns the log path or None when nothing was pending."""
        if not self._pending:
            return None
        path = self._target()
        lines = "".join(r.to_json_line() + "\n" for r in self._pending)
        with path.open("a", encoding="utf-8") as fh:
            fh.write(lines)
        self.written += len(self._pending)
        self._pending.clear()
        return path
