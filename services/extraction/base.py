"""Abstract base class for extraction providers.

The extraction step is an external black box: given a raw document it
returns structured invoice fields or fails. Providers are interchangeable
behind this interface.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python
"""

from abc import ABC, abstractmethod
from typing import Any

from services.extraction.schema import ExtractedFields
from services.ingestion.models import RawDocument
from services.shared.config import Settings


class ExtractionProvider(ABC):
    """Abstract base class for invoice extraction providers.

    Implementations signal failure by raising ExtractionError. Any other
    exception is also treated as a failure of that single document by the
    processing pipeline.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    async def extract(self, document: RawDocument) -> ExtractedFields | dict[str, Any]:
        """Extract structured invoice fields from a document.

        Args:
            document: Raw document as ingested

        Returns:
            ExtractedFields, or a mapping the pipeline validates into one

        Raises:
            ExtractionError: If the document cannot be extracted
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is available/configured.

        Returns:
            True if provider can be used, False otherwise
        """
        pass

    async def aclose(self) -> None:
        """Release provider resources such as HTTP clients. No-op by default."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier (e.g., 'sample', 'http')
        """
        pass
