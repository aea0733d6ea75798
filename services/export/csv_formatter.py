"""CSV serialization of processed invoices.

Row format: numeric fields unquoted, vendor and category wrapped in double
quotes, confidence rendered with a trailing '%'. Embedded quotes and commas
are not escaped, so a vendor containing '"' produces a malformed row.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from services.shared.errors import EmptyExportError
from services.store.models import InvoiceRecord, InvoiceStatus

CSV_HEADERS = [
    "Invoice Number",
    "Vendor",
    "Amount",
    "Tax Amount",
    "Date",
    "Due Date",
    "Currency",
    "Category",
    "Confidence",
]

CSV_MEDIA_TYPE = "text/csv"


def _text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def format_row(record: InvoiceRecord) -> str:
    """Render one invoice as a CSV line (no trailing newline)."""
    return ",".join(
        [
            _text(record.invoice_number),
            f'"{_text(record.vendor)}"',
            _text(record.amount),
            _text(record.tax_amount),
            _text(record.date),
            _text(record.due_date),
            _text(record.currency),
            f'"{_text(record.category)}"',
            f"{record.confidence:.1f}%",
        ]
    )


def to_csv(records: Sequence[InvoiceRecord]) -> str:
    """Serialize PROCESSED invoices to CSV text.

    Records with any other status are skipped. Lines are joined with '\\n'
    and the text has no trailing newline, so it holds exactly
    1 + len(eligible records) lines.

    Args:
        records: Invoices to export

    Returns:
        CSV text with header row

    Raises:
        EmptyExportError: If no PROCESSED record is given
    """
    eligible = [r for r in records if r.status is InvoiceStatus.PROCESSED]
    if not eligible:
        raise EmptyExportError("No processed invoices to export")

    lines = [",".join(CSV_HEADERS)]
    lines.extend(format_row(r) for r in eligible)
    return "\n".join(lines)


def export_filename(day: date) -> str:
    """Default download name, e.g. 'invoice_data_2024-01-31.csv'."""
    return f"invoice_data_{day.isoformat()}.csv"
