"""Selects the extraction provider named in settings."""

import logging

from services.extraction.base import ExtractionProvider
from services.extraction.http_provider import HttpExtractionProvider
from services.extraction.sample_provider import SampleExtractionProvider
from services.shared.config import Settings

logger = logging.getLogger(__name__)

PROVIDERS: dict[str, type[ExtractionProvider]] = {
    "sample": SampleExtractionProvider,
    "http": HttpExtractionProvider,
}


def create_extraction_service(settings: Settings) -> ExtractionProvider:
    """Build the provider for settings.extraction_provider.

    Args:
        settings: Application settings

    Returns:
        Extraction provider instance

    Raises:
        ValueError: If the provider name is not one of PROVIDERS
    """
    name = settings.extraction_provider
    provider_class = PROVIDERS.get(name)
    if provider_class is None:
        raise ValueError(
            f"Unknown extraction provider: '{name}'. Available providers: {', '.join(PROVIDERS)}"
        )

    provider = provider_class(settings)
    if not provider.is_available():
        logger.warning(f"Extraction provider '{name}' is not available; check its configuration")

    logger.info(f"Created extraction provider: {name}")
    return provider
