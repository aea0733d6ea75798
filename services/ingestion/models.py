"""Document and file lifecycle models for the ingestion queue."""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class FileStatus(StrEnum):
    """Lifecycle state of an ingested document.

    Transitions: PENDING -> PROCESSING -> {PROCESSED, ERROR}.
    PROCESSED and ERROR are terminal.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (FileStatus.PROCESSED, FileStatus.ERROR)


ALLOWED_TRANSITIONS: dict[FileStatus, frozenset[FileStatus]] = {
    FileStatus.PENDING: frozenset({FileStatus.PROCESSING}),
    FileStatus.PROCESSING: frozenset({FileStatus.PROCESSED, FileStatus.ERROR}),
    FileStatus.PROCESSED: frozenset(),
    FileStatus.ERROR: frozenset(),
}


class RawDocument(BaseModel):
    """A document as handed to the ingestion queue.

    Attributes:
        name: Original file name
        content: Raw file bytes
        media_type: MIME type reported by the uploader
    """

    model_config = ConfigDict(frozen=True)

    name: str
    content: bytes
    media_type: str

    @property
    def size_bytes(self) -> int:
        return len(self.content)


class FileRecord(BaseModel):
    """Tracked lifecycle state of one ingested document.

    Records are immutable snapshots; the queue replaces a record with an
    updated copy on every status transition.

    Attributes:
        id: Unique record identifier
        name: Original file name
        size_bytes: Document size in bytes
        mime_type: Document media type
        status: Current lifecycle state
        created_at: Enqueue timestamp (UTC)
        updated_at: Timestamp of the last status transition (UTC)
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    size_bytes: int = Field(ge=0)
    mime_type: str
    status: FileStatus = FileStatus.PENDING
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
