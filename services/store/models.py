"""Invoice record model held by the invoice store."""

import datetime as dt
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from services.extraction.schema import ExtractedFields


class InvoiceStatus(StrEnum):
    """Terminal status of a processed document."""

    PROCESSED = "processed"
    ERROR = "error"


class InvoiceRecord(BaseModel):
    """Structured result of processing one document.

    Error records are stubs: they carry identifiers, status, confidence 0
    and the processing timestamp, but no invoice or financial fields.

    Attributes:
        id: Unique invoice record identifier
        source_file_id: FileRecord this invoice was produced from
        processed_at: Timestamp of the terminal transition (UTC)
        error: Failure message for error records
    """

    model_config = ConfigDict(frozen=True)

    id: str
    source_file_id: str
    file_name: str | None = None
    status: InvoiceStatus
    invoice_number: str | None = None
    vendor: str | None = None
    amount: Decimal | None = Field(default=None, ge=0)
    tax_amount: Decimal | None = Field(default=None, ge=0)
    currency: str | None = None
    category: str | None = None
    date: dt.date | None = None
    due_date: dt.date | None = None
    confidence: float = Field(default=0.0, ge=0, le=100)
    processed_at: dt.datetime
    error: str | None = None

    @classmethod
    def processed(
        cls,
        record_id: str,
        source_file_id: str,
        fields: ExtractedFields,
        processed_at: dt.datetime,
        file_name: str | None = None,
    ) -> "InvoiceRecord":
        """Build a PROCESSED record from validated extraction fields."""
        return cls(
            id=record_id,
            source_file_id=source_file_id,
            file_name=file_name,
            status=InvoiceStatus.PROCESSED,
            processed_at=processed_at,
            **fields.model_dump(),
        )

    @classmethod
    def failed(
        cls,
        record_id: str,
        source_file_id: str,
        error: str,
        processed_at: dt.datetime,
        file_name: str | None = None,
    ) -> "InvoiceRecord":
        """Build an ERROR stub record."""
        return cls(
            id=record_id,
            source_file_id=source_file_id,
            file_name=file_name,
            status=InvoiceStatus.ERROR,
            processed_at=processed_at,
            error=error,
        )
