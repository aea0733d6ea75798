"""Invoice workspace: the exposed pipeline, query, analytics and export API.

Wires the ingestion queue, processing pipeline, invoice store and event
sink together for one process. The HTTP API and the command line script
both operate on a single InvoiceWorkspace.
"""

import logging
from collections.abc import AsyncIterator, Sequence

from services.analytics.service import (
    CategoryBucket,
    MonthlyBucket,
    SummaryMetrics,
    category_breakdown,
    monthly_breakdown,
    summarize,
)
from services.export.csv_formatter import to_csv
from services.extraction.base import ExtractionProvider
from services.extraction.factory import create_extraction_service
from services.ingestion.models import FileRecord, RawDocument
from services.ingestion.queue import IngestionQueue
from services.processing.events import ProcessingEvent
from services.processing.pipeline import ProcessingPipeline
from services.shared.config import Settings
from services.shared.errors import EmptyExportError, IngestionError
from services.shared.events import EventSink, MemoryEventSink, Notification
from services.store.models import InvoiceRecord, InvoiceStatus
from services.store.service import InvoiceStore

logger = logging.getLogger(__name__)


class InvoiceWorkspace:
    """In-memory invoice processing workspace.

    Attributes:
        settings: Application settings
        event_sink: Receiver for notifications
        queue: Ingestion queue
        store: Invoice store
        pipeline: Processing pipeline
    """

    def __init__(
        self,
        settings: Settings,
        provider: ExtractionProvider | None = None,
        event_sink: EventSink | None = None,
    ) -> None:
        """Initialize workspace.

        Args:
            settings: Application settings
            provider: Extraction provider; defaults to the configured one
            event_sink: Notification receiver; defaults to an in-memory sink
        """
        self.settings = settings
        self.event_sink = event_sink or MemoryEventSink(settings.notification_history_size)
        self.queue = IngestionQueue(settings, self.event_sink)
        self.store = InvoiceStore()
        self.pipeline = ProcessingPipeline(
            settings,
            self.queue,
            self.store,
            provider or create_extraction_service(settings),
            self.event_sink,
        )

    # Ingestion

    def upload(self, document: RawDocument) -> FileRecord:
        """Enqueue one document; raises IngestionError on rejection."""
        return self.queue.enqueue(document)

    def upload_many(
        self, documents: list[RawDocument]
    ) -> tuple[list[FileRecord], list[IngestionError]]:
        return self.queue.enqueue_many(documents)

    def files(self) -> list[FileRecord]:
        return self.queue.list_records()

    def remove_file(self, file_id: str) -> FileRecord:
        return self.queue.remove(file_id)

    # Pipeline API

    def submit_batch(
        self, files: Sequence[FileRecord] | None = None
    ) -> AsyncIterator[ProcessingEvent]:
        """Claim files for processing and return their event stream.

        Defaults to every pending file. Raises InvalidStateError right away if
        a batch is already running.
        """
        return self.pipeline.run(files)

    def progress(self) -> float:
        return self.pipeline.progress()

    def cancel(self) -> None:
        self.pipeline.cancel()

    # Query API

    def search(self, term: str = "", status: InvoiceStatus | None = None) -> list[InvoiceRecord]:
        return self.store.search(term, status)

    # Analytics API

    def summary(self) -> SummaryMetrics:
        return summarize(self.store.snapshot())

    def monthly_breakdown(self) -> list[MonthlyBucket]:
        return monthly_breakdown(self.store.snapshot())

    def category_breakdown(self) -> list[CategoryBucket]:
        return category_breakdown(self.store.snapshot())

    # Export API

    def export_csv(self) -> str:
        """Export PROCESSED invoices as CSV text.

        Raises:
            EmptyExportError: If no invoice has been processed
        """
        processed = self.store.by_status(InvoiceStatus.PROCESSED)
        try:
            content = to_csv(processed)
        except EmptyExportError:
            self.event_sink.emit(
                Notification(
                    kind="export_empty",
                    title="No data to export",
                    description="Process some invoices first",
                )
            )
            raise

        logger.info(f"Exported {len(processed)} invoice(s) to CSV")
        self.event_sink.emit(
            Notification(
                kind="export_completed",
                title="Export successful",
                description=f"Exported {len(processed)} invoices to CSV",
            )
        )
        return content

    # Lifecycle

    async def aclose(self) -> None:
        """Release resources held by the extraction provider."""
        await self.pipeline.provider.aclose()
