"""Ingestion queue for uploaded invoice documents.

Accepts raw documents, validates them against the configured size limit and
media types, and tracks one FileRecord per accepted document through its
lifecycle. Records are kept in insertion order and retained read-only once
they reach a terminal state.
"""

import logging
import threading
import uuid
from datetime import UTC, datetime

from services.ingestion.models import ALLOWED_TRANSITIONS, FileRecord, FileStatus, RawDocument
from services.shared.config import Settings
from services.shared.errors import IngestionError, InvalidStateError, RecordNotFoundError
from services.shared.events import EventSink, LoggingEventSink, Notification

logger = logging.getLogger(__name__)


def normalize_media_type(media_type: str) -> str:
    """Strip parameters and normalize case ('Image/PNG; q=1' -> 'image/png')."""
    return media_type.split(";", 1)[0].strip().lower()


class IngestionQueue:
    """Thread-safe, insertion-ordered queue of tracked documents.

    No deduplication is performed: enqueueing the same document twice
    yields two independent records.
    """

    def __init__(self, settings: Settings, event_sink: EventSink | None = None) -> None:
        """Initialize ingestion queue.

        Args:
            settings: Application settings with ingestion limits
            event_sink: Receiver for ingestion notifications
        """
        self.settings = settings
        self.event_sink = event_sink or LoggingEventSink()
        self._accepted_types = {normalize_media_type(t) for t in settings.accepted_media_types}
        self._records: dict[str, FileRecord] = {}
        self._documents: dict[str, RawDocument] = {}
        self._lock = threading.Lock()

    def validate(self, document: RawDocument) -> None:
        """Check a document against the ingestion limits.

        Args:
            document: Document to check

        Raises:
            IngestionError: If the document is too large or of an unsupported type
        """
        if document.size_bytes > self.settings.max_file_size_bytes:
            raise IngestionError(
                f"File '{document.name}' exceeds the maximum size of "
                f"{self.settings.max_file_size_bytes} bytes",
                reason="size",
                details={
                    "name": document.name,
                    "size_bytes": document.size_bytes,
                    "max_file_size_bytes": self.settings.max_file_size_bytes,
                },
            )

        media_type = normalize_media_type(document.media_type)
        if media_type not in self._accepted_types:
            raise IngestionError(
                f"Unsupported media type '{document.media_type}' for file '{document.name}'",
                reason="media_type",
                details={
                    "name": document.name,
                    "media_type": document.media_type,
                    "accepted_media_types": sorted(self._accepted_types),
                },
            )

    def enqueue(self, document: RawDocument) -> FileRecord:
        """Accept a document and create a PENDING record for it.

        Args:
            document: Raw document to ingest

        Returns:
            The created FileRecord

        Raises:
            IngestionError: If the document is rejected; no record is created
        """
        self.validate(document)

        record = FileRecord(
            id=uuid.uuid4().hex,
            name=document.name,
            size_bytes=document.size_bytes,
            mime_type=normalize_media_type(document.media_type),
        )
        with self._lock:
            self._records[record.id] = record
            self._documents[record.id] = document

        logger.info(f"Enqueued file {record.id} ({record.name}, {record.size_bytes} bytes)")
        return record

    def enqueue_many(
        self, documents: list[RawDocument]
    ) -> tuple[list[FileRecord], list[IngestionError]]:
        """Enqueue several documents, collecting rejections instead of stopping.

        Args:
            documents: Documents to ingest

        Returns:
            Tuple of (created records, rejection errors)
        """
        created: list[FileRecord] = []
        rejected: list[IngestionError] = []

        for document in documents:
            try:
                created.append(self.enqueue(document))
            except IngestionError as e:
                logger.warning(f"Rejected file '{document.name}': {e.message}")
                rejected.append(e)
                self.event_sink.emit(
                    Notification(kind="file_rejected", title="File rejected", description=e.message)
                )

        if created:
            self.event_sink.emit(
                Notification(
                    kind="files_ingested",
                    title="Files uploaded successfully",
                    description=f"{len(created)} file(s) ready for processing",
                )
            )
        return created, rejected

    def get(self, file_id: str) -> FileRecord:
        """Get the current record for a file.

        Raises:
            RecordNotFoundError: If the file is unknown
        """
        with self._lock:
            record = self._records.get(file_id)
        if record is None:
            raise RecordNotFoundError(f"File not found: {file_id}", {"file_id": file_id})
        return record

    def document(self, file_id: str) -> RawDocument:
        """Get the raw document submitted for a file.

        Raises:
            RecordNotFoundError: If the file is unknown
        """
        with self._lock:
            document = self._documents.get(file_id)
        if document is None:
            raise RecordNotFoundError(f"File not found: {file_id}", {"file_id": file_id})
        return document

    def list_records(self) -> list[FileRecord]:
        """Return all records in insertion order."""
        with self._lock:
            return list(self._records.values())

    def pending(self) -> list[FileRecord]:
        """Return PENDING records in insertion order."""
        return [r for r in self.list_records() if r.status is FileStatus.PENDING]

    def remove(self, file_id: str) -> FileRecord:
        """Remove a record that has not started processing.

        Args:
            file_id: Record identifier

        Returns:
            The removed record

        Raises:
            RecordNotFoundError: If the file is unknown
            InvalidStateError: If the record is not PENDING; it is left unchanged
        """
        with self._lock:
            record = self._records.get(file_id)
            if record is None:
                raise RecordNotFoundError(f"File not found: {file_id}", {"file_id": file_id})
            if record.status is not FileStatus.PENDING:
                raise InvalidStateError(
                    f"Cannot remove file {file_id} in state '{record.status}'",
                    {"file_id": file_id, "status": str(record.status)},
                )
            del self._records[file_id]
            del self._documents[file_id]

        logger.info(f"Removed pending file {file_id}")
        return record

    def transition(self, file_id: str, new_status: FileStatus) -> FileRecord:
        """Move a record to a new lifecycle state.

        Args:
            file_id: Record identifier
            new_status: Target state

        Returns:
            The updated record

        Raises:
            RecordNotFoundError: If the file is unknown
            InvalidStateError: If the transition is not allowed
        """
        with self._lock:
            record = self._records.get(file_id)
            if record is None:
                raise RecordNotFoundError(f"File not found: {file_id}", {"file_id": file_id})
            if new_status not in ALLOWED_TRANSITIONS[record.status]:
                raise InvalidStateError(
                    f"Invalid transition for file {file_id}: {record.status} -> {new_status}",
                    {"file_id": file_id, "from": str(record.status), "to": str(new_status)},
                )
            updated = record.model_copy(
                update={"status": new_status, "updated_at": datetime.now(UTC)}
            )
            self._records[file_id] = updated

        logger.debug(f"File {file_id}: {record.status} -> {new_status}")
        return updated

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
