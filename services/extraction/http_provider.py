"""HTTP extraction provider for a remote extraction service.

Posts each document as a multipart upload and expects a JSON object with
the ExtractedFields keys in return. Transient transport errors are retried
with exponential backoff; HTTP error responses and undecodable bodies fail
the document.
"""

import json
import logging
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from services.extraction.base import ExtractionProvider
from services.ingestion.models import RawDocument
from services.shared.config import Settings
from services.shared.errors import ExtractionError

logger = logging.getLogger(__name__)


class HttpExtractionProvider(ExtractionProvider):
    """Extraction provider delegating to a remote HTTP service."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        """Initialize HTTP extraction provider.

        Args:
            settings: Application settings
            client: Optional preconfigured HTTP client (used in tests)
        """
        super().__init__(settings)
        self._url = settings.extraction_service_url
        # The pipeline enforces the per-document timeout; this only bounds a single attempt.
        self._client = client or httpx.AsyncClient(timeout=settings.extraction_timeout_seconds)

    @property
    def provider_name(self) -> str:
        return "http"

    def is_available(self) -> bool:
        return bool(self._url)

    async def extract(self, document: RawDocument) -> dict[str, Any]:
        """Send a document to the remote service.

        Args:
            document: Raw document

        Returns:
            Decoded JSON fields, validated later by the pipeline

        Raises:
            ExtractionError: On HTTP errors, exhausted retries or invalid JSON
        """
        try:
            response = await self._post_with_retry(document)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise ExtractionError(
                f"Extraction service returned {e.response.status_code} for {document.name}",
                {"name": document.name, "status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise ExtractionError(
                f"Extraction service unreachable: {e}", {"name": document.name, "url": self._url}
            ) from e
        except json.JSONDecodeError as e:
            raise ExtractionError(
                f"Invalid JSON from extraction service: {e}", {"name": document.name}
            ) from e

        if not isinstance(payload, dict):
            raise ExtractionError(
                "Extraction service response is not a JSON object", {"name": document.name}
            )
        return payload

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential_jitter(initial=1, max=10),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def _post_with_retry(self, document: RawDocument) -> httpx.Response:
        """POST the document, retrying transient transport errors.

        Raises:
            httpx.TransportError: After all retry attempts exhausted
        """
        return await self._client.post(
            self._url,
            files={"file": (document.name, document.content, document.media_type)},
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
