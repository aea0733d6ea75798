"""Sample extraction provider backed by a fixed invoice catalog.

Stands in for a real OCR/extraction backend in demos and local runs. The
catalog entry and confidence are derived from a hash of the document
content, so the same document always yields the same fields.
"""

import asyncio
import hashlib
import logging
from datetime import date
from decimal import Decimal
from typing import Any

from services.extraction.base import ExtractionProvider
from services.extraction.schema import ExtractedFields
from services.ingestion.models import RawDocument
from services.shared.config import Settings
from services.shared.errors import ExtractionError

logger = logging.getLogger(__name__)

SAMPLE_INVOICES: list[dict[str, Any]] = [
    {
        "invoice_number": "INV-2024-001",
        "vendor": "TechCorp Solutions",
        "amount": Decimal("12500.00"),
        "tax_amount": Decimal("2250.00"),
        "date": date(2024, 1, 15),
        "due_date": date(2024, 2, 15),
        "currency": "USD",
        "category": "Software Services",
    },
    {
        "invoice_number": "INV-2024-002",
        "vendor": "Office Supplies Inc",
        "amount": Decimal("850.75"),
        "tax_amount": Decimal("153.14"),
        "date": date(2024, 1, 16),
        "due_date": date(2024, 2, 16),
        "currency": "USD",
        "category": "Office Supplies",
    },
    {
        "invoice_number": "INV-2024-003",
        "vendor": "Marketing Agency Pro",
        "amount": Decimal("5000.00"),
        "tax_amount": Decimal("900.00"),
        "date": date(2024, 1, 17),
        "due_date": date(2024, 2, 17),
        "currency": "USD",
        "category": "Marketing Services",
    },
]


class SampleExtractionProvider(ExtractionProvider):
    """Deterministic provider returning catalog invoices."""

    def __init__(self, settings: Settings) -> None:
        """Initialize sample provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._delay = settings.sample_provider_delay_seconds
        self._failure_marker = settings.sample_provider_failure_marker.lower()

    @property
    def provider_name(self) -> str:
        return "sample"

    def is_available(self) -> bool:
        return True

    async def extract(self, document: RawDocument) -> ExtractedFields:
        """Pick a catalog invoice for the document.

        Args:
            document: Raw document

        Returns:
            Catalog fields with a content-derived confidence between 95 and 99

        Raises:
            ExtractionError: If the document is empty or its name carries the failure marker
        """
        if self._delay:
            await asyncio.sleep(self._delay)

        if not document.content:
            raise ExtractionError(f"Empty document: {document.name}", {"name": document.name})
        if self._failure_marker and self._failure_marker in document.name.lower():
            raise ExtractionError(
                f"Could not read invoice from {document.name}", {"name": document.name}
            )

        digest = hashlib.sha256(document.content).digest()
        entry = SAMPLE_INVOICES[digest[0] % len(SAMPLE_INVOICES)]
        confidence = round(95 + (int.from_bytes(digest[1:3], "big") / 65536) * 4, 1)

        logger.debug(f"Sample extraction for {document.name}: {entry['invoice_number']}")
        return ExtractedFields(**entry, confidence=confidence)
