"""Invoice field model returned by extraction providers.

Every value that reaches the invoice store passes through this model, so
malformed numbers, negative amounts or out-of-range confidences are
rejected before a record is created.
"""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExtractedFields(BaseModel):
    """Structured invoice data extracted from one document.

    Supplies every InvoiceRecord field except the identifiers, status and
    processing timestamp, which the pipeline assigns.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    invoice_number: str = Field(min_length=1, description="Invoice identifier")
    vendor: str = Field(min_length=1, description="Supplier/vendor company name")
    amount: Decimal = Field(ge=0, description="Invoice amount")
    tax_amount: Decimal = Field(ge=0, description="Tax amount")
    currency: str = Field(default="USD", description="Currency code (ISO 4217)")
    category: str = Field(min_length=1, description="Free-form spending category")
    date: dt.date = Field(description="Date invoice was issued")
    due_date: dt.date = Field(description="Payment due date")
    confidence: float = Field(ge=0, le=100, description="Extraction confidence (0-100)")

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        code = value.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"Invalid currency code: {value!r}")
        return code
