from __future__ import annotations

from pathlib import Path

import pytest

from sheet_ingest.errors import ValidationError
from sheet_ingest.excel.reader import (
    CSV_SHEET_NAME,
    build_headers,
    is_empty,
    locate_header_row,
    normalize_sheet,
    read_workbook,
)
from sheet_ingest.models.config_models import AnalysisConfig


def test_is_empty():
    assert is_empty(None)
    assert is_empty("  ")
    assert is_empty(float("nan"))
    assert not is_empty(0)
    assert not is_empty("x")


def test_locate_header_skips_title_rows():
    rows = [
        ["Monthly report", None, None, None, None],
        [None, None, None, None, None],
        ["id", "name", "email", "phone", "status"],
        [1, "Dan", "d@example.com", "050", "open"],
    ]
    assert locate_header_row(rows) == 2


def test_locate_header_falls_back_to_first_non_blank_row():
    rows = [[None, None], ["Name", "Amount", ""], ["Dan", "100", ""]]
    assert locate_header_row(rows) == 1


def test_locate_header_blank_sheet():
    with pytest.raises(ValidationError):
        locate_header_row([[None, ""], ["", None]])


def test_build_headers_placeholders():
    assert build_headers(["Name", None, " ", 2024.0]) == ["Name", "Column_2", "Column_3", "2024"]


def test_normalize_sheet_pads_and_skips_blank_rows():
    rows = [
        ["a", "b", "c", "d"],
        [1, 2],
        [None, None, None, None],
        [3, 4, 5, 6, 7],
    ]
    sheet = normalize_sheet(rows, "S", AnalysisConfig())
    assert sheet.header_index == 0
    assert sheet.headers == ["a", "b", "c", "d"]
    assert sheet.rows == [[1, 2, None, None], [3, 4, 5, 6]]
    assert sheet.row_numbers == [2, 4]
    assert sheet.column(1) == [2, 4]


def test_read_csv_keeps_na_strings():
    data = "Name,Code,Note\nDan,NA,null\n".encode("utf-8")
    wb = read_workbook(data, "upload.csv")
    assert wb.sheet_names == [CSV_SHEET_NAME]
    name, rows = wb.raw_rows()
    assert name == CSV_SHEET_NAME
    assert rows[1] == ["Dan", "NA", "null"]


def test_read_xlsx_multiple_sheets(xlsx_builder):
    data = xlsx_builder({
        "First": [["h1", "h2", "h3", "h4"], ["a", "b", "c", "d"]],
        "Second": [["x", "y", "z", "w"], [1, 2, 3, 4]],
    })
    wb = read_workbook(data, "book.xlsx")
    assert wb.sheet_names == ["First", "Second"]
    name, rows = wb.raw_rows("Second")
    assert name == "Second"
    assert rows[0] == ["x", "y", "z", "w"]


def test_read_workbook_from_path(temp_workdir: Path, xlsx_builder):
    path = temp_workdir / "book.xlsx"
    path.write_bytes(xlsx_builder({"Only": [["a", "b"], [1, 2]]}))
    wb = read_workbook(path)
    assert wb.file_name == "book.xlsx"
    assert wb.sheet_names == ["Only"]


def test_unknown_sheet(xlsx_builder):
    wb = read_workbook(xlsx_builder({"Only": [["a"], [1]]}), "book.xlsx")
    with pytest.raises(ValidationError, match="not found"):
        wb.raw_rows("Missing")


@pytest.mark.parametrize(
    "data,name,message",
    [
        (b"", "book.xlsx", "No file uploaded"),
        (b"abc", "notes.txt", "Unsupported file type"),
        (b"not a zip", "book.xlsx", "Could not read"),
    ],
)
def test_read_workbook_errors(data: bytes, name: str, message: str):
    with pytest.raises(ValidationError, match=message):
        read_workbook(data, name)
