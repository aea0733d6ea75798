"""Unit tests for CSV export formatting."""

from datetime import UTC, date, datetime

import pytest

from conftest import make_fields
from services.export.csv_formatter import CSV_HEADERS, export_filename, format_row, to_csv
from services.shared.errors import EmptyExportError
from services.store.models import InvoiceRecord


def processed(n: int, **kwargs) -> InvoiceRecord:  # type: ignore[no-untyped-def]
    return InvoiceRecord.processed(
        record_id=f"inv-{n}",
        source_file_id=f"file-{n}",
        fields=make_fields(**kwargs),
        processed_at=datetime.now(UTC),
    )


def failed(n: int) -> InvoiceRecord:
    return InvoiceRecord.failed(
        record_id=f"inv-{n}",
        source_file_id=f"file-{n}",
        error="boom",
        processed_at=datetime.now(UTC),
    )


def test_header_row() -> None:
    content = to_csv([processed(1)])

    assert content.split("\n")[0] == (
        "Invoice Number,Vendor,Amount,Tax Amount,Date,Due Date,Currency,Category,Confidence"
    )
    assert len(CSV_HEADERS) == 9


def test_row_format() -> None:
    record = processed(
        1,
        amount="12500.00",
        vendor="TechCorp Solutions",
        category="Software Services",
        invoice_number="INV-2024-001",
        invoice_date=date(2024, 1, 15),
        confidence=97.3,
    )

    assert format_row(record) == (
        'INV-2024-001,"TechCorp Solutions",12500.00,0.00,2024-01-15,2024-01-15,'
        'USD,"Software Services",97.3%'
    )


def test_line_count_excludes_error_records() -> None:
    records = [processed(1), failed(2), processed(3), processed(4)]

    lines = to_csv(records).split("\n")

    assert len(lines) == 1 + 3
    assert all(line.endswith("%") for line in lines[1:])


def test_no_trailing_newline() -> None:
    assert not to_csv([processed(1)]).endswith("\n")


def test_embedded_comma_not_escaped() -> None:
    row = format_row(processed(1, vendor="Smith, Jones & Co"))

    assert '"Smith, Jones & Co"' in row


def test_empty_export_raises() -> None:
    with pytest.raises(EmptyExportError):
        to_csv([])


def test_only_error_records_raises() -> None:
    with pytest.raises(EmptyExportError):
        to_csv([failed(1)])


def test_export_filename() -> None:
    assert export_filename(date(2024, 3, 7)) == "invoice_data_2024-03-07.csv"
