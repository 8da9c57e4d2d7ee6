from __future__ import annotations

import io
import math
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from sheet_ingest.errors import ValidationError
from sheet_ingest.models.config_models import AnalysisConfig

"""Spreadsheet reader shared by the analyze and import paths.

- .xlsx / .xlsm / .xls via pandas.ExcelFile, .csv via pandas.read_csv
- always header=None + dtype=object: cells keep their Python type
- header row = first row (within the scan window) with MORE than
  ``header_min_cells`` non-empty cells; rows above it are titles/noise
- blank header cells get a positional placeholder (``Column_<n>``, 1-based)
"""

__all__ = [
    "EXCEL_SUFFIXES",
    "Workbook",
    "SheetData",
    "is_empty",
    "read_workbook",
    "locate_header_row",
    "build_headers",
    "normalize_sheet",
]

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}
CSV_SUFFIXES = {".csv"}
CSV_SHEET_NAME = "Sheet1"


def is_empty(value: Any) -> bool:
    """None / NaN / NaT / blank string."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, float):
        return math.isnan(value)
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        # list / dict などは pd.isna が配列を返す
        return False


def _to_python(value: Any) -> Any:
    if is_empty(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value


@dataclass
class SheetData:
    sheet_name: str
    header_index: int  # 0-based index of the header row in the raw sheet
    headers: list[str]
    rows: list[list[Any]]  # non-blank data rows, padded/truncated to len(headers)
    row_numbers: list[int] = field(default_factory=list)  # 1-based sheet row per data row

    def column(self, index: int) -> list[Any]:
        return [row[index] if index < len(row) else None for row in self.rows]


@dataclass
class Workbook:
    """Raw cell grid per sheet, in workbook order."""
    file_name: str
    sheet_names: list[str]
    _grids: dict[str, list[list[Any]]] = field(default_factory=dict, repr=False)

    def raw_rows(self, sheet_name: str | None = None) -> tuple[str, list[list[Any]]]:
        """Return (resolved sheet name, rows). ``None`` selects the first sheet."""
        name = sheet_name or (self.sheet_names[0] if self.sheet_names else None)
        if name is None or name not in self._grids:
            raise ValidationError(f'Sheet "{sheet_name}" not found')
        rows = self._grids[name]
        if not rows or all(all(is_empty(c) for c in r) for r in rows):
            raise ValidationError("File is empty")
        return name, rows


def _frame_to_grid(df: pd.DataFrame) -> list[list[Any]]:
    return [[_to_python(v) for v in raw] for raw in df.itertuples(index=False, name=None)]


def read_workbook(source: Path | bytes, file_name: str | None = None) -> Workbook:
    """Read every sheet of an uploaded spreadsheet.

    Parameters
    ----------
    source: ファイルパス または アップロードされた生バイト列
    file_name: 拡張子判定用 (source がバイト列の場合は必須)
    """
    if isinstance(source, Path):
        if not source.exists() or source.stat().st_size == 0:
            raise ValidationError("No file uploaded")
        file_name = file_name or source.name
        data = source.read_bytes()
    else:
        data = source
    if not data or not file_name:
        raise ValidationError("No file uploaded")

    suffix = Path(file_name).suffix.lower()
    try:
        if suffix in CSV_SUFFIXES:
            # keep_default_na=False: "NA" / "null" などの文字列をそのまま保持
            df = pd.read_csv(
                io.BytesIO(data),
                header=None,
                dtype=object,
                keep_default_na=False,
                encoding="utf-8-sig",
                skip_blank_lines=False,
            )
            grids = {CSV_SHEET_NAME: _frame_to_grid(df)}
        elif suffix in EXCEL_SUFFIXES:
            xls = pd.ExcelFile(io.BytesIO(data))
            grids = {}
            for name in xls.sheet_names:
                df = xls.parse(name, header=None, dtype=object, keep_default_na=False)
                grids[str(name)] = _frame_to_grid(df)
        else:
            raise ValidationError(f"Unsupported file type: {suffix or file_name}")
    except pd.errors.EmptyDataError:
        raise ValidationError("File is empty") from None
    except (ValueError, OSError, zipfile.BadZipFile, UnicodeDecodeError) as e:
        raise ValidationError(f"Could not read spreadsheet {file_name}: {e}") from e
    return Workbook(file_name=file_name, sheet_names=list(grids), _grids=grids)


def locate_header_row(rows: list[list[Any]], scan_limit: int = 20, min_cells: int = 3) -> int:
    """Index of the header row.

    The first row within ``scan_limit`` having more than ``min_cells``
    non-empty cells. When no row qualifies, the first non-blank row is used.
    """
    window = rows[:scan_limit]
    for i, row in enumerate(window):
        if sum(1 for c in row if not is_empty(c)) > min_cells:
            return i
    for i, row in enumerate(window):
        if any(not is_empty(c) for c in row):
            return i
    raise ValidationError("no header row found")


def build_headers(row: list[Any], placeholder_prefix: str = "Column_") -> list[str]:
    headers: list[str] = []
    for i, cell in enumerate(row):
        text = "" if is_empty(cell) else _header_text(cell)
        headers.append(text or f"{placeholder_prefix}{i + 1}")
    return headers


def _header_text(cell: Any) -> str:
    if isinstance(cell, datetime | date):
        return cell.isoformat()
    if isinstance(cell, float) and cell.is_integer():
        return str(int(cell))
    return str(cell).strip()


def normalize_sheet(
    rows: list[list[Any]],
    sheet_name: str,
    analysis: AnalysisConfig | None = None,
) -> SheetData:
    """Locate the header and return the non-blank data rows below it."""
    cfg = analysis or AnalysisConfig()
    header_index = locate_header_row(rows, cfg.header_scan_rows, cfg.header_min_cells)
    headers = build_headers(rows[header_index], cfg.placeholder_prefix)
    width = len(headers)
    data_rows: list[list[Any]] = []
    row_numbers: list[int] = []
    for offset, raw in enumerate(rows[header_index + 1:], start=header_index + 2):
        if all(is_empty(c) for c in raw):
            continue
        cells = list(raw[:width]) + [None] * max(0, width - len(raw))
        data_rows.append(cells)
        row_numbers.append(offset)
    return SheetData(
        sheet_name=sheet_name,
        header_index=header_index,
        headers=headers,
        rows=data_rows,
        row_numbers=row_numbers,
    )
