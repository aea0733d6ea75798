"""FastAPI application for invoice batch processing and analytics.

Endpoints:
- Health, readiness and Prometheus metrics
- Document upload, listing and removal (ingestion queue)
- Batch processing with an NDJSON event stream, progress and cancellation
- Invoice search, analytics and CSV export
- Recent notifications

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date

from fastapi import FastAPI, File, Query, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from services.analytics.service import CategoryBucket, MonthlyBucket, SummaryMetrics
from services.api import metrics
from services.export.csv_formatter import CSV_MEDIA_TYPE, export_filename
from services.ingestion.models import FileRecord, RawDocument
from services.processing.events import BatchSummary
from services.shared.config import get_settings
from services.shared.errors import (
    EmptyExportError,
    IngestionError,
    InvalidStateError,
    RecordNotFoundError,
)
from services.shared.events import MemoryEventSink, Notification
from services.store.models import InvoiceRecord, InvoiceStatus
from services.workspace.service import InvoiceWorkspace

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

workspace = InvoiceWorkspace(settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Close the extraction provider on shutdown."""
    yield
    await workspace.aclose()
    logger.info("Extraction provider closed")


app = FastAPI(
    title="Invoice Batch Analytics",
    description="Batch invoice extraction pipeline with analytics and CSV export",
    version=settings.service_version,
    lifespan=lifespan,
)

_INGESTION_STATUS = {
    # Literal: the named 413 constant differs across Starlette releases.
    "size": 413,
    "media_type": status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
}


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(duration)

    return response


@app.exception_handler(IngestionError)
async def ingestion_error_handler(request: Request, exc: IngestionError) -> JSONResponse:
    return JSONResponse(
        status_code=_INGESTION_STATUS.get(exc.reason, status.HTTP_400_BAD_REQUEST),
        content={"detail": exc.message, "reason": exc.reason},
    )


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": exc.message})


@app.exception_handler(RecordNotFoundError)
async def not_found_handler(request: Request, exc: RecordNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.message})


@app.exception_handler(EmptyExportError)
async def empty_export_handler(request: Request, exc: EmptyExportError) -> JSONResponse:
    metrics.csv_exports_total.labels(status="empty").inc()
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.message})


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    provider: str


class RejectedDocument(BaseModel):
    """A document refused by the ingestion queue."""

    name: str
    reason: str
    error: str


class UploadResponse(BaseModel):
    """Document upload response."""

    documents: list[FileRecord]
    rejected: list[RejectedDocument] = []


class ProgressResponse(BaseModel):
    """Pipeline progress response."""

    running: bool
    progress: float
    summary: BatchSummary | None = None


class CancelResponse(BaseModel):
    """Cancellation response."""

    cancelled: bool


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness probe."""
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check: the extraction provider must be available."""
    provider = workspace.pipeline.provider
    return ReadinessResponse(ready=provider.is_available(), provider=provider.provider_name)


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint."""
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.post("/api/v1/documents", response_model=UploadResponse, tags=["Documents"])
async def upload_documents(
    files: list[UploadFile] = File(..., description="Invoice files (PDF, JPEG, PNG)"),  # noqa: B008
) -> UploadResponse:
    """Upload one or more invoice documents into the ingestion queue.

    Accepted documents are queued as `pending`. Rejected documents (too
    large or unsupported type) are listed under `rejected`; if every
    document is rejected the request fails with 413 or 415.

    ## Usage Example

    ```bash
    curl -X POST "http://localhost:8000/api/v1/documents" \\
      -F "files=@invoice1.pdf" -F "files=@invoice2.png"
    ```
    """
    documents: list[RawDocument] = []
    for upload in files:
        content = await upload.read()
        metrics.document_upload_size_bytes.observe(len(content))
        documents.append(
            RawDocument(
                name=upload.filename or "upload",
                content=content,
                media_type=upload.content_type or "application/octet-stream",
            )
        )

    created, rejected = workspace.upload_many(documents)
    metrics.documents_uploaded_total.labels(status="accepted").inc(len(created))
    metrics.documents_uploaded_total.labels(status="rejected").inc(len(rejected))

    if rejected and not created:
        raise rejected[0]

    return UploadResponse(
        documents=created,
        rejected=[
            RejectedDocument(name=e.details.get("name", ""), reason=e.reason, error=e.message)
            for e in rejected
        ],
    )


@app.get("/api/v1/documents", response_model=list[FileRecord], tags=["Documents"])
def list_documents() -> list[FileRecord]:
    """List tracked documents in upload order."""
    return workspace.files()


@app.delete("/api/v1/documents/{file_id}", response_model=FileRecord, tags=["Documents"])
def remove_document(file_id: str) -> FileRecord:
    """Remove a pending document. Returns 409 once processing has started."""
    return workspace.remove_file(file_id)


@app.post("/api/v1/batches", tags=["Processing"])
async def start_batch() -> StreamingResponse:
    """Process every pending document, streaming lifecycle events as NDJSON.

    Each line is a ProcessingEvent: one `processing` event per document as
    it starts, then one `processed` or `error` event with its invoice record.
    Returns 409 if a batch is already running.
    """
    # Claimed before the response starts so a conflict is still a 409.
    events = workspace.submit_batch()

    async def event_stream() -> AsyncIterator[str]:
        async for event in events:
            yield event.model_dump_json() + "\n"

    return StreamingResponse(event_stream(), media_type="application/x-ndjson")


@app.get("/api/v1/batches/progress", response_model=ProgressResponse, tags=["Processing"])
def batch_progress() -> ProgressResponse:
    """Report completed fraction of the current or last batch."""
    return ProgressResponse(
        running=workspace.pipeline.is_running,
        progress=workspace.progress(),
        summary=workspace.pipeline.last_summary,
    )


@app.post("/api/v1/batches/cancel", response_model=CancelResponse, tags=["Processing"])
def cancel_batch() -> CancelResponse:
    """Stop starting new documents; in-flight ones finish, the rest stay pending."""
    running = workspace.pipeline.is_running
    workspace.cancel()
    return CancelResponse(cancelled=running)


@app.get("/api/v1/invoices", response_model=list[InvoiceRecord], tags=["Invoices"])
def search_invoices(
    search: str = Query("", description="Case-insensitive match on vendor or invoice number"),
    invoice_status: InvoiceStatus | None = Query(None, alias="status"),
) -> list[InvoiceRecord]:
    """Search invoices in processing order."""
    return workspace.search(search, invoice_status)


@app.get("/api/v1/analytics/summary", response_model=SummaryMetrics, tags=["Analytics"])
def analytics_summary() -> SummaryMetrics:
    return workspace.summary()


@app.get("/api/v1/analytics/monthly", response_model=list[MonthlyBucket], tags=["Analytics"])
def analytics_monthly() -> list[MonthlyBucket]:
    return workspace.monthly_breakdown()


@app.get("/api/v1/analytics/categories", response_model=list[CategoryBucket], tags=["Analytics"])
def analytics_categories() -> list[CategoryBucket]:
    return workspace.category_breakdown()


@app.get("/api/v1/export/csv", tags=["Export"])
def export_csv() -> Response:
    """Download processed invoices as CSV. Returns 404 when nothing is processed."""
    content = workspace.export_csv()
    metrics.csv_exports_total.labels(status="success").inc()
    return Response(
        content=content,
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{export_filename(date.today())}"'},
    )


@app.get("/api/v1/notifications", response_model=list[Notification], tags=["Notifications"])
def list_notifications() -> list[Notification]:
    """Recent notifications, oldest first."""
    sink = workspace.event_sink
    return sink.recent() if isinstance(sink, MemoryEventSink) else []
