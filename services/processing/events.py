"""Events emitted by the processing pipeline."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from services.ingestion.models import FileStatus
from services.store.models import InvoiceRecord


class ProcessingEvent(BaseModel):
    """A single lifecycle transition of one file.

    Attributes:
        file_id: FileRecord that transitioned
        new_status: State entered
        invoice_record: Stored record, present on terminal transitions
        error: Failure message for ERROR transitions
        completed: Terminal transitions so far in this batch
        total: Items in this batch
        emitted_at: Event timestamp (UTC)
    """

    model_config = ConfigDict(frozen=True)

    file_id: str
    new_status: FileStatus
    invoice_record: InvoiceRecord | None = None
    error: str | None = None
    completed: int
    total: int
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_terminal(self) -> bool:
        return self.new_status.is_terminal


class BatchSummary(BaseModel):
    """Outcome of one pipeline run.

    Attributes:
        batch_id: Run identifier
        total: Items submitted
        processed: Items that reached PROCESSED
        errors: Items that reached ERROR
        skipped: Items removed from the queue before they were started
        remaining: Items left PENDING by cancellation
        cancelled: Whether the run was cancelled before draining the batch
    """

    batch_id: str
    total: int
    processed: int = 0
    errors: int = 0
    skipped: int = 0
    remaining: int = 0
    cancelled: bool = False
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
