from __future__ import annotations

from datetime import datetime, time

import pytest

from sheet_ingest.errors import LayoutMismatchError, ValidationError
from sheet_ingest.excel.reader import normalize_sheet
from sheet_ingest.models.config_models import LegacyField, LegacyLayout
from sheet_ingest.services.transformer import extract_legacy_values, transform_rows, validate_layout

"""Row transformer: payload shaping and the fixed-position legacy layout."""

LAYOUT = LegacyLayout(
    schema_id="test",
    version=1,
    table_name="master_data",
    fields=(
        LegacyField("expected_accumulation", 1, ("accumulation",)),
        LegacyField("one_time_deposit", 2, ("deposit",)),
        LegacyField("product_type", 3, ("product type",)),
        LegacyField("producer", 4, ("producer",)),
        LegacyField("documents_transfer_date", 5, ("documents",)),
    ),
)
HEADERS = ["Client", "Accumulation", "Deposit", "Product Type", "Producer", "Documents date"]


def _transform(rows, layout=None):
    sheet = normalize_sheet(rows, "Sheet1")
    return transform_rows(
        sheet,
        project_id="p1",
        batch_id="batch_1",
        month=3,
        year=2024,
        layout=layout,
        import_date="2024-03-01T00:00:00Z",
    )


def test_round_trip_blank_header_column():
    (record,) = _transform([["Name", "Amount", ""], ["Dan", "100", ""]])
    assert record.payload == {"Name": "Dan", "Amount": "100"}
    row = record.to_row()
    assert row["raw_data"] == {"Name": "Dan", "Amount": "100"}
    assert row["project_id"] == "p1"
    assert row["import_batch"] == "batch_1"
    assert (row["import_month"], row["import_year"]) == (3, 2024)
    assert "total_expected_accumulation" not in row


def test_blank_rows_are_skipped_and_dates_serialized():
    records = _transform([
        ["Name", "Joined", "City", "Age"],
        ["Dan", datetime(2024, 1, 2), "Haifa", 30],
        [None, None, None, None],
        ["Noa", None, "Eilat", None],
    ])
    assert len(records) == 2
    assert records[0].payload["Joined"] == "2024-01-02T00:00:00"
    assert records[1].payload == {"Name": "Noa", "City": "Eilat"}
    assert records[1].row_number == 4


def test_no_data_rows():
    with pytest.raises(ValidationError, match="No valid data"):
        _transform([["Name", "Amount", "City", "Age"]])


def test_legacy_values_extracted_by_position():
    (record,) = _transform([HEADERS, ["Dan", "1,000", "500", " Pension ", "Acme", "15/03/2024"]], LAYOUT)
    legacy = record.legacy
    assert legacy.total_expected_accumulation == 1500
    assert legacy.product_type_new == "Pension"
    assert legacy.producer_new == "Acme"
    assert legacy.documents_transfer_date == "2024-03-15"
    assert record.to_row()["documents_transfer_date"] == "2024-03-15"


@pytest.mark.parametrize(
    "value,expected",
    [
        ("235451-01-01", None),
        ("1000-01-01", None),
        ("2024-06-30", "2024-06-30"),
        (datetime(2024, 1, 31), "2024-01-31"),
        (45000, "2023-03-15"),
        ("garbage", None),
    ],
)
def test_legacy_date_year_range(value, expected):
    row = ["Dan", None, None, None, None, value]
    assert extract_legacy_values(row, LAYOUT).documents_transfer_date == expected


def test_legacy_total_is_null_when_not_positive():
    row = ["Dan", "abc", None, None, None, None]
    assert extract_legacy_values(row, LAYOUT).total_expected_accumulation is None


def test_layout_mismatch_fails_fast():
    headers = ["Client", "Accumulation", "Something else", "Product Type", "Producer", "Documents date"]
    with pytest.raises(LayoutMismatchError) as exc:
        validate_layout(headers, LAYOUT)
    assert "position 2" in str(exc.value)
    assert "Something else" in str(exc.value)


def test_layout_mismatch_short_header():
    with pytest.raises(LayoutMismatchError, match="missing"):
        _transform([["Client", "Accumulation", "Deposit", "x"], ["Dan", 1, 2, 3]], LAYOUT)


def test_non_strict_layout_skips_validation():
    layout = LegacyLayout("loose", 1, "master_data", LAYOUT.fields, strict=False)
    (record,) = _transform([["A", "B", "C", "D", "E", "F"], ["Dan", 10, 0, "x", "y", None]], layout)
    assert record.legacy.total_expected_accumulation == 10


def test_time_only_cell_becomes_text():
    (record,) = _transform([["Name", "Start", "City"], ["Dan", time(8, 30), "Haifa"]])
    assert record.payload == {"Name": "Dan", "Start": "08:30:00", "City": "Haifa"}
