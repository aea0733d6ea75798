"""Error taxonomy for the invoice pipeline.

Exception Hierarchy:
    InvoicePipelineError (base)
    ├── IngestionError       - document rejected at enqueue, no record created
    ├── RecordNotFoundError  - unknown file or invoice identifier
    ├── InvalidStateError    - operation incompatible with a lifecycle state
    ├── ExtractionError      - extraction failed for one document
    └── EmptyExportError     - export requested with nothing to export

Only IngestionError, InvalidStateError and EmptyExportError reach callers.
ExtractionError is absorbed by the processing pipeline and surfaces as an
Error terminal transition on the event stream.
"""

from typing import Any


class InvoicePipelineError(Exception):
    """Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        details: Additional context for logs and API responses
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class IngestionError(InvoicePipelineError):
    """Raised when a document is rejected by the ingestion queue."""

    def __init__(self, message: str, reason: str, details: dict[str, Any] | None = None) -> None:
        """Initialize ingestion error.

        Args:
            message: Human-readable error message
            reason: Machine-readable rejection reason ('size' or 'media_type')
            details: Additional context
        """
        super().__init__(message, details)
        self.reason = reason


class InvalidStateError(InvoicePipelineError):
    """Raised when an operation targets a record in an incompatible state."""


class ExtractionError(InvoicePipelineError):
    """Raised by extraction providers when a document cannot be extracted."""


class EmptyExportError(InvoicePipelineError):
    """Raised when an export is requested and no record is eligible."""


class RecordNotFoundError(InvoicePipelineError):
    """Raised when a file or invoice identifier is unknown."""
