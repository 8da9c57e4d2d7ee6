from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm

"""Terminal progress bar over the sub-batches of an import run.

The bar is drawn only when stderr (tqdm's stream) is a terminal; under a
server or CI the tracker just counts.
"""

__all__ = [
    "SubBatchProgress",
    "progress_enabled",
]


def progress_enabled() -> bool:
    return sys.stderr.isatty()


class SubBatchProgress:
    def __init__(self, total_batches: int, table: str) -> None:
        self.total_batches = total_batches
        self.table = table
        self.done = 0
        self.failed = 0
        self.rows = 0
        self.bar: Any = None
        if progress_enabled() and total_batches > 0:
            self.bar = tqdm(total=total_batches, desc=f"Importing {table}", unit="batch", ascii=True, ncols=80)

    def advance(self, rows_imported: int = 0, *, failed: bool = False) -> None:
        """Count one finished sub-batch (``rows_imported`` rows accepted)."""
        self.done += 1
        self.rows += rows_imported
        if failed:
            self.failed += 1
        if self.bar is not None:
            self.bar.update(1)
            self.bar.set_postfix(rows=self.rows, failed=self.failed)

    def close(self) -> None:
        if self.bar is not None:
            self.bar.close()
            self.bar = None

    def __enter__(self) -> SubBatchProgress:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
