"""Batch processing pipeline.

Drains PENDING files from the ingestion queue through the extraction
provider and records one invoice per file in the invoice store.

Per file: PENDING -> PROCESSING -> PROCESSED | ERROR. A failed, timed-out
or malformed extraction marks only that file ERROR; the batch continues.

A pool of `pipeline_concurrency` asyncio workers pulls from a shared work
queue. With one worker, files are processed strictly in submission order;
with more, terminal events and store appends may complete out of order.
Cancellation is cooperative: workers stop taking new files, in-flight
extractions finish, and untouched files stay PENDING for a later run.
"""

import asyncio
import logging
import threading
import time
import uuid
from collections.abc import AsyncIterator, Sequence
from datetime import UTC, datetime

from prometheus_client import Counter, Gauge, Histogram
from pydantic import ValidationError

from services.extraction.base import ExtractionProvider
from services.extraction.schema import ExtractedFields
from services.ingestion.models import FileRecord, FileStatus, RawDocument
from services.ingestion.queue import IngestionQueue
from services.processing.events import BatchSummary, ProcessingEvent
from services.shared.config import Settings
from services.shared.errors import ExtractionError, InvalidStateError, RecordNotFoundError
from services.shared.events import EventSink, LoggingEventSink, Notification
from services.store.models import InvoiceRecord, InvoiceStatus
from services.store.service import InvoiceStore

logger = logging.getLogger(__name__)


pipeline_items_total = Counter(
    "pipeline_items_total",
    "Documents that reached a terminal state",
    ["status"],  # processed, error
)

extraction_failures_total = Counter(
    "extraction_failures_total",
    "Failed extractions by reason",
    ["reason"],  # extraction, timeout, validation, unexpected
)

extraction_duration_seconds = Histogram(
    "extraction_duration_seconds",
    "Extraction call duration in seconds",
    ["provider"],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)

pipeline_batch_progress = Gauge(
    "pipeline_batch_progress",
    "Completed fraction of the current batch",
)


class ProcessingPipeline:
    """Runs batches of ingested files through extraction.

    Attributes:
        settings: Application settings
        queue: Source of files and their lifecycle state
        store: Destination for invoice records
        provider: Extraction provider
        event_sink: Receiver for batch notifications
    """

    def __init__(
        self,
        settings: Settings,
        queue: IngestionQueue,
        store: InvoiceStore,
        provider: ExtractionProvider,
        event_sink: EventSink | None = None,
    ) -> None:
        """Initialize pipeline.

        Args:
            settings: Application settings (concurrency and timeout)
            queue: Ingestion queue holding the files
            store: Invoice store receiving results
            provider: Extraction provider
            event_sink: Receiver for batch notifications
        """
        self.settings = settings
        self.queue = queue
        self.store = store
        self.provider = provider
        self.event_sink = event_sink or LoggingEventSink()
        self._concurrency = settings.pipeline_concurrency
        self._timeout = settings.extraction_timeout_seconds
        self._cancel_requested = threading.Event()
        self._running = False
        self._has_run = False
        self._completed = 0
        self._total = 0
        self._summary: BatchSummary | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_summary(self) -> BatchSummary | None:
        """Summary of the current or most recent batch."""
        return self._summary

    def progress(self) -> float:
        """Completed fraction of the current or last batch, in [0, 1].

        Never decreases during a batch. 0.0 before the first batch; 1.0 for
        a batch that had nothing left to process.
        """
        if self._total <= 0:
            return 1.0 if self._has_run else 0.0
        return min(1.0, self._completed / self._total)

    def cancel(self) -> None:
        """Stop starting new files; in-flight extractions run to completion."""
        if not self._running:
            logger.info("Cancel requested with no batch running")
            return
        self._cancel_requested.set()
        logger.warning("Batch cancellation requested; no new documents will be started")

    def run(self, batch: Sequence[FileRecord] | None = None) -> AsyncIterator[ProcessingEvent]:
        """Claim a batch and return the stream of its lifecycle events.

        The batch is validated and the pipeline marked running before this
        returns, so a concurrent run is refused and cancel() takes effect even
        if the stream has not been iterated yet. The stream yields one
        PROCESSING event when a file starts and one terminal event (PROCESSED
        or ERROR, with its invoice record) when it finishes. Callers must
        iterate the returned stream; closing it early cancels the rest of the
        batch.

        Args:
            batch: Files to process; defaults to every PENDING file in the queue

        Returns:
            Async iterator of ProcessingEvent per transition

        Raises:
            InvalidStateError: If a batch is already running or a file is not PENDING
            RecordNotFoundError: If a file is unknown to the queue
        """
        if self._running:
            raise InvalidStateError("A batch is already running")

        records = self._validate_batch(batch if batch is not None else self.queue.pending())

        self._running = True
        self._has_run = True
        self._cancel_requested.clear()
        self._completed = 0
        self._total = len(records)
        summary = BatchSummary(batch_id=uuid.uuid4().hex, total=len(records))
        self._summary = summary
        pipeline_batch_progress.set(self.progress())
        logger.info(
            f"Starting batch {summary.batch_id}: {len(records)} file(s), "
            f"concurrency {self._concurrency}, provider {self.provider.provider_name}"
        )
        return self._stream(records, summary)

    async def _stream(
        self, records: list[FileRecord], summary: BatchSummary
    ) -> AsyncIterator[ProcessingEvent]:
        work: asyncio.Queue[FileRecord] = asyncio.Queue()
        for record in records:
            work.put_nowait(record)
        events: asyncio.Queue[ProcessingEvent | None] = asyncio.Queue()

        worker_count = max(1, min(self._concurrency, len(records)))
        workers = [
            asyncio.create_task(self._worker(work, events, summary)) for _ in range(worker_count)
        ]

        try:
            active = len(workers)
            while active:
                event = await events.get()
                if event is None:
                    active -= 1
                    continue
                yield event
            # Re-raise anything a worker failed with outside per-item handling.
            await asyncio.gather(*workers)
        finally:
            if not all(w.done() for w in workers):
                # Consumer stopped early: let in-flight items finish, start nothing new.
                self._cancel_requested.set()
                await asyncio.gather(*workers, return_exceptions=True)
            self._finish(summary)

    async def collect(self, batch: Sequence[FileRecord] | None = None) -> list[ProcessingEvent]:
        """Run a batch to completion and return all of its events."""
        return [event async for event in self.run(batch)]

    def _validate_batch(self, batch: Sequence[FileRecord]) -> list[FileRecord]:
        records: list[FileRecord] = []
        seen: set[str] = set()
        for record in batch:
            if record.id in seen:
                continue
            current = self.queue.get(record.id)
            if current.status is not FileStatus.PENDING:
                raise InvalidStateError(
                    f"File {record.id} is not pending (status '{current.status}')",
                    {"file_id": record.id, "status": str(current.status)},
                )
            seen.add(record.id)
            records.append(current)
        return records

    async def _worker(
        self,
        work: "asyncio.Queue[FileRecord]",
        events: "asyncio.Queue[ProcessingEvent | None]",
        summary: BatchSummary,
    ) -> None:
        try:
            while not self._cancel_requested.is_set():
                try:
                    record = work.get_nowait()
                except asyncio.QueueEmpty:
                    break
                await self._process(record, events, summary)
        finally:
            events.put_nowait(None)

    async def _process(
        self,
        record: FileRecord,
        events: "asyncio.Queue[ProcessingEvent | None]",
        summary: BatchSummary,
    ) -> None:
        try:
            started = self.queue.transition(record.id, FileStatus.PROCESSING)
            document = self.queue.document(record.id)
        except (RecordNotFoundError, InvalidStateError) as e:
            # Removed (or taken by another run) after the batch was submitted.
            logger.warning(f"Skipping file {record.id}: {e.message}")
            summary.skipped += 1
            self._total -= 1
            pipeline_batch_progress.set(self.progress())
            return

        await events.put(
            ProcessingEvent(
                file_id=record.id,
                new_status=FileStatus.PROCESSING,
                completed=self._completed,
                total=self._total,
            )
        )

        invoice = await self._extract(started, document)
        self.store.append(invoice)

        if invoice.status is InvoiceStatus.PROCESSED:
            new_status = FileStatus.PROCESSED
            summary.processed += 1
        else:
            new_status = FileStatus.ERROR
            summary.errors += 1
        self.queue.transition(record.id, new_status)

        self._completed += 1
        pipeline_items_total.labels(status=str(new_status)).inc()
        pipeline_batch_progress.set(self.progress())
        logger.info(
            f"File {record.id} ({record.name}) -> {new_status} "
            f"[{self._completed}/{self._total}]"
        )

        await events.put(
            ProcessingEvent(
                file_id=record.id,
                new_status=new_status,
                invoice_record=invoice,
                error=invoice.error,
                completed=self._completed,
                total=self._total,
            )
        )

    async def _extract(self, record: FileRecord, document: RawDocument) -> InvoiceRecord:
        """Call the provider for one file and build its invoice record.

        Never raises for provider failures; they become an ERROR record.
        """
        provider_name = self.provider.provider_name
        start_time = time.perf_counter()
        try:
            raw = await asyncio.wait_for(self.provider.extract(document), timeout=self._timeout)
            fields = raw if isinstance(raw, ExtractedFields) else ExtractedFields.model_validate(raw)
        except ExtractionError as e:
            error, reason = e.message, "extraction"
        except TimeoutError:
            error, reason = f"Extraction timed out after {self._timeout}s", "timeout"
        except ValidationError as e:
            error = f"Invalid extraction fields: {e.error_count()} validation error(s)"
            reason = "validation"
        except Exception as e:
            logger.exception(f"Extraction provider '{provider_name}' failed for file {record.id}")
            error, reason = str(e) or e.__class__.__name__, "unexpected"
        else:
            extraction_duration_seconds.labels(provider=provider_name).observe(
                time.perf_counter() - start_time
            )
            return InvoiceRecord.processed(
                record_id=uuid.uuid4().hex,
                source_file_id=record.id,
                fields=fields,
                processed_at=datetime.now(UTC),
                file_name=record.name,
            )

        extraction_duration_seconds.labels(provider=provider_name).observe(
            time.perf_counter() - start_time
        )
        extraction_failures_total.labels(reason=reason).inc()
        logger.warning(f"Extraction failed for file {record.id} ({record.name}): {error}")
        return InvoiceRecord.failed(
            record_id=uuid.uuid4().hex,
            source_file_id=record.id,
            error=error,
            processed_at=datetime.now(UTC),
            file_name=record.name,
        )

    def _finish(self, summary: BatchSummary) -> None:
        summary.cancelled = self._cancel_requested.is_set()
        summary.remaining = summary.total - summary.processed - summary.errors - summary.skipped
        summary.finished_at = datetime.now(UTC)
        self._running = False

        logger.info(
            f"Batch {summary.batch_id} finished: {summary.processed} processed, "
            f"{summary.errors} error(s), {summary.remaining} left pending"
        )

        if summary.cancelled:
            self.event_sink.emit(
                Notification(
                    kind="batch_cancelled",
                    title="Processing cancelled",
                    description=(
                        f"{summary.processed + summary.errors} of {summary.total} file(s) "
                        f"finished; {summary.remaining} left pending"
                    ),
                )
            )
        else:
            self.event_sink.emit(
                Notification(
                    kind="batch_completed",
                    title="Processing complete!",
                    description=f"Successfully processed {summary.processed} invoices",
                )
            )
