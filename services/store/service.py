"""Append-only, queryable store of invoice records.

Appends and snapshot reads are serialized by a lock, so every reader sees
the store either before or after a given append, never in between. Records
are frozen models and are never mutated or removed once stored.
"""

import logging
import threading
from collections.abc import Callable, Iterator

from services.shared.errors import InvalidStateError, RecordNotFoundError
from services.store.models import InvoiceRecord, InvoiceStatus

logger = logging.getLogger(__name__)

InvoicePredicate = Callable[[InvoiceRecord], bool]


def matches_term(record: InvoiceRecord, term: str) -> bool:
    """Case-insensitive substring match on vendor or invoice number.

    An empty term matches every record.
    """
    needle = term.strip().lower()
    if not needle:
        return True
    return needle in (record.vendor or "").lower() or needle in (
        record.invoice_number or ""
    ).lower()


class InvoiceStore:
    """Thread-safe, insertion-ordered invoice record store."""

    def __init__(self) -> None:
        self._records: list[InvoiceRecord] = []
        self._ids: set[str] = set()
        self._by_source: dict[str, InvoiceRecord] = {}
        self._lock = threading.Lock()

    def append(self, record: InvoiceRecord) -> None:
        """Store a new record.

        Args:
            record: Record produced by the processing pipeline

        Raises:
            InvalidStateError: If the record id, or a record for the same
                source file, is already stored
        """
        with self._lock:
            if record.id in self._ids:
                raise InvalidStateError(
                    f"Invoice record {record.id} already stored", {"invoice_id": record.id}
                )
            if record.source_file_id in self._by_source:
                raise InvalidStateError(
                    f"File {record.source_file_id} already has an invoice record",
                    {"file_id": record.source_file_id},
                )
            self._records.append(record)
            self._ids.add(record.id)
            self._by_source[record.source_file_id] = record

        logger.debug(f"Stored invoice {record.id} ({record.status}) for file {record.source_file_id}")

    def snapshot(self) -> tuple[InvoiceRecord, ...]:
        """Return a point-in-time, immutable view of all records in insertion order."""
        with self._lock:
            return tuple(self._records)

    def all(self) -> list[InvoiceRecord]:
        """Return all records in insertion order."""
        return list(self.snapshot())

    def query(self, predicate: InvoicePredicate) -> Iterator[InvoiceRecord]:
        """Lazily yield records matching a predicate.

        The snapshot is taken on the first iteration; later appends are not seen.
        """
        for record in self.snapshot():
            if predicate(record):
                yield record

    def search(self, term: str = "", status: InvoiceStatus | None = None) -> list[InvoiceRecord]:
        """Filter by vendor/invoice-number substring and optional status.

        Args:
            term: Case-insensitive substring matched against vendor or invoice number
            status: Exact status filter; None matches all

        Returns:
            Matching records in insertion order
        """
        return list(
            self.query(
                lambda r: matches_term(r, term) and (status is None or r.status is status)
            )
        )

    def by_status(self, status: InvoiceStatus) -> list[InvoiceRecord]:
        return list(self.query(lambda r: r.status is status))

    def get(self, invoice_id: str) -> InvoiceRecord:
        """Get a record by id.

        Raises:
            RecordNotFoundError: If no record has this id
        """
        for record in self.snapshot():
            if record.id == invoice_id:
                return record
        raise RecordNotFoundError(f"Invoice not found: {invoice_id}", {"invoice_id": invoice_id})

    def by_source_file(self, file_id: str) -> InvoiceRecord | None:
        """Return the record produced for a file, if any."""
        with self._lock:
            return self._by_source.get(file_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
