"""Shared test doubles for the extraction provider."""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Any

import pytest

from services.extraction.base import ExtractionProvider
from services.extraction.schema import ExtractedFields
from services.ingestion.models import RawDocument
from services.shared.config import Settings
from services.shared.errors import ExtractionError


def make_fields(
    amount: str | int = "100.00",
    category: str = "Software Services",
    invoice_date: date = date(2024, 1, 15),
    vendor: str = "TechCorp Solutions",
    invoice_number: str = "INV-2024-001",
    confidence: float = 97.5,
) -> ExtractedFields:
    """Build valid extraction fields with sensible defaults."""
    return ExtractedFields(
        invoice_number=invoice_number,
        vendor=vendor,
        amount=Decimal(str(amount)),
        tax_amount=Decimal("0.00"),
        currency="USD",
        category=category,
        date=invoice_date,
        due_date=invoice_date,
        confidence=confidence,
    )


def make_document(name: str = "invoice.pdf", content: bytes | None = None) -> RawDocument:
    """Build a small PDF document."""
    return RawDocument(
        name=name,
        content=content if content is not None else f"%PDF-1.4 {name}".encode(),
        media_type="application/pdf",
    )


class StubExtractionProvider(ExtractionProvider):
    """Deterministic provider keyed by document name.

    Each result is ExtractedFields, a dict, or an exception instance to raise.
    Optional per-name delays simulate slow extractions.
    """

    def __init__(
        self,
        results: dict[str, ExtractedFields | dict[str, Any] | Exception],
        delays: dict[str, float] | None = None,
        default_delay: float = 0.0,
    ) -> None:
        super().__init__(Settings(_env_file=None))
        self.results = results
        self.delays = delays or {}
        self.default_delay = default_delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    @property
    def provider_name(self) -> str:
        return "stub"

    def is_available(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True

    async def extract(self, document: RawDocument) -> ExtractedFields | dict[str, Any]:
        self.calls.append(document.name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(document.name, self.default_delay)
            if delay:
                await asyncio.sleep(delay)
            result = self.results.get(document.name)
            if result is None:
                raise ExtractionError(f"No stub result for {document.name}")
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.in_flight -= 1


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None)
