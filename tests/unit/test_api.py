"""Unit tests for the invoice batch API.

Tests cover:
- Health check endpoints
- Document upload, listing and removal
- Batch streaming, progress and cancellation
- Invoice search, analytics and CSV export
- Notifications and Prometheus metrics
"""

import asyncio
import json
from datetime import date

import httpx
import pytest
from fastapi import status
from fastapi.testclient import TestClient

from conftest import StubExtractionProvider, make_document, make_fields
from services.api import main
from services.api.main import app
from services.ingestion.models import FileStatus
from services.shared.config import Settings
from services.shared.errors import ExtractionError
from services.workspace.service import InvoiceWorkspace


@pytest.fixture
def workspace(monkeypatch: pytest.MonkeyPatch) -> InvoiceWorkspace:
    """Replace the application workspace with one backed by a stub provider."""
    provider = StubExtractionProvider(
        {
            "acme.pdf": make_fields(
                amount="100.00",
                vendor="Acme Corp",
                invoice_number="INV-1",
                category="Office",
                invoice_date=date(2024, 1, 10),
            ),
            "globex.png": make_fields(
                amount="250.00",
                vendor="Globex",
                invoice_number="INV-2",
                category="Travel",
                invoice_date=date(2024, 2, 2),
            ),
            "broken.pdf": ExtractionError("unreadable scan"),
        }
    )
    settings = Settings(_env_file=None, max_file_size_bytes=1024)
    workspace = InvoiceWorkspace(settings, provider=provider)
    monkeypatch.setattr(main, "workspace", workspace)
    return workspace


@pytest.fixture
def client(workspace: InvoiceWorkspace) -> TestClient:
    """Create test client."""
    return TestClient(app)


def upload(client: TestClient, *files: tuple[str, bytes, str]):  # type: ignore[no-untyped-def]
    return client.post(
        "/api/v1/documents", files=[("files", file) for file in files]
    )


def run_batch(client: TestClient) -> list[dict]:
    response = client.post("/api/v1/batches")
    assert response.status_code == status.HTTP_200_OK
    assert response.headers["content-type"].startswith("application/x-ndjson")
    return [json.loads(line) for line in response.text.splitlines() if line]


def test_health_check(client: TestClient) -> None:
    """Test health check endpoint."""
    response = client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "invoice-batch-analytics"
    assert "version" in data


def test_readiness_check(client: TestClient) -> None:
    """Test readiness check endpoint."""
    response = client.get("/ready")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"ready": True, "provider": "stub"}


class TestDocuments:
    """Test the ingestion endpoints."""

    def test_upload_accepts_documents(self, client: TestClient) -> None:
        response = upload(
            client,
            ("acme.pdf", b"%PDF-1.4 acme", "application/pdf"),
            ("globex.png", b"\x89PNG globex", "image/png"),
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert [d["name"] for d in data["documents"]] == ["acme.pdf", "globex.png"]
        assert all(d["status"] == "pending" for d in data["documents"])
        assert data["rejected"] == []

    def test_upload_partially_rejected(self, client: TestClient) -> None:
        response = upload(
            client,
            ("acme.pdf", b"%PDF-1.4 acme", "application/pdf"),
            ("notes.txt", b"hello", "text/plain"),
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert len(data["documents"]) == 1
        assert data["rejected"][0]["name"] == "notes.txt"
        assert data["rejected"][0]["reason"] == "media_type"

    def test_upload_too_large(self, client: TestClient) -> None:
        response = upload(client, ("big.pdf", b"x" * 2048, "application/pdf"))

        assert response.status_code == 413
        assert response.json()["reason"] == "size"

    def test_upload_unsupported_type(self, client: TestClient) -> None:
        response = upload(client, ("sheet.xlsx", b"data", "application/vnd.ms-excel"))

        assert response.status_code == status.HTTP_415_UNSUPPORTED_MEDIA_TYPE

    def test_upload_requires_files(self, client: TestClient) -> None:
        response = client.post("/api/v1/documents")

        assert response.status_code == 422

    def test_list_documents(self, client: TestClient) -> None:
        upload(client, ("acme.pdf", b"%PDF acme", "application/pdf"))

        response = client.get("/api/v1/documents")

        assert [d["name"] for d in response.json()] == ["acme.pdf"]

    def test_remove_pending_document(self, client: TestClient) -> None:
        file_id = upload(client, ("acme.pdf", b"%PDF acme", "application/pdf")).json()[
            "documents"
        ][0]["id"]

        response = client.delete(f"/api/v1/documents/{file_id}")

        assert response.status_code == status.HTTP_200_OK
        assert client.get("/api/v1/documents").json() == []

    def test_remove_started_document_conflicts(
        self, client: TestClient, workspace: InvoiceWorkspace
    ) -> None:
        file_id = upload(client, ("acme.pdf", b"%PDF acme", "application/pdf")).json()[
            "documents"
        ][0]["id"]
        workspace.queue.transition(file_id, FileStatus.PROCESSING)

        response = client.delete(f"/api/v1/documents/{file_id}")

        assert response.status_code == status.HTTP_409_CONFLICT
        assert workspace.queue.get(file_id).status is FileStatus.PROCESSING

    def test_remove_unknown_document(self, client: TestClient) -> None:
        response = client.delete("/api/v1/documents/missing")

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestBatches:
    """Test batch processing endpoints."""

    def test_streams_lifecycle_events(self, client: TestClient) -> None:
        upload(
            client,
            ("acme.pdf", b"%PDF acme", "application/pdf"),
            ("broken.pdf", b"%PDF broken", "application/pdf"),
        )

        events = run_batch(client)

        assert [e["new_status"] for e in events] == [
            "processing",
            "processed",
            "processing",
            "error",
        ]
        assert events[1]["invoice_record"]["vendor"] == "Acme Corp"
        assert events[3]["error"] == "unreadable scan"

    def test_progress_after_batch(self, client: TestClient) -> None:
        assert client.get("/api/v1/batches/progress").json()["progress"] == 0.0

        upload(client, ("acme.pdf", b"%PDF acme", "application/pdf"))
        run_batch(client)

        data = client.get("/api/v1/batches/progress").json()
        assert data["running"] is False
        assert data["progress"] == 1.0
        assert data["summary"]["processed"] == 1

    @pytest.mark.asyncio
    async def test_concurrent_batch_requests_conflict(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        provider = StubExtractionProvider(
            {"a.pdf": make_fields(), "b.pdf": make_fields()}, default_delay=0.2
        )
        workspace = InvoiceWorkspace(Settings(_env_file=None), provider=provider)
        monkeypatch.setattr(main, "workspace", workspace)
        workspace.upload_many([make_document("a.pdf"), make_document("b.pdf")])

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            responses = await asyncio.gather(
                client.post("/api/v1/batches"), client.post("/api/v1/batches")
            )

        statuses = sorted(r.status_code for r in responses)
        assert statuses == [status.HTTP_200_OK, status.HTTP_409_CONFLICT]
        conflict = next(r for r in responses if r.status_code == status.HTTP_409_CONFLICT)
        assert conflict.json()["detail"] == "A batch is already running"
        accepted = next(r for r in responses if r.status_code == status.HTTP_200_OK)
        assert len(accepted.text.splitlines()) == 4
        assert provider.calls == ["a.pdf", "b.pdf"]

    @pytest.mark.asyncio
    async def test_cancel_right_after_submit_leaves_files_pending(
        self, client: TestClient, workspace: InvoiceWorkspace
    ) -> None:
        for name in ("acme.pdf", "globex.png"):
            workspace.upload(make_document(name))

        events = workspace.submit_batch()
        response = client.post("/api/v1/batches/cancel")
        remaining = [event async for event in events]

        assert response.json() == {"cancelled": True}
        assert remaining == []
        assert all(f.status is FileStatus.PENDING for f in workspace.files())
        assert client.get("/api/v1/batches/progress").json()["summary"]["cancelled"] is True

    def test_cancel_without_batch(self, client: TestClient) -> None:
        response = client.post("/api/v1/batches/cancel")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"cancelled": False}


class TestInvoices:
    """Test query, analytics and export endpoints."""

    @pytest.fixture(autouse=True)
    def processed_batch(self, client: TestClient) -> None:
        upload(
            client,
            ("acme.pdf", b"%PDF acme", "application/pdf"),
            ("broken.pdf", b"%PDF broken", "application/pdf"),
            ("globex.png", b"\x89PNG globex", "image/png"),
        )
        run_batch(client)

    def test_search_all(self, client: TestClient) -> None:
        response = client.get("/api/v1/invoices")

        assert [r["status"] for r in response.json()] == ["processed", "error", "processed"]

    def test_search_by_term(self, client: TestClient) -> None:
        response = client.get("/api/v1/invoices", params={"search": "acme"})

        assert [r["vendor"] for r in response.json()] == ["Acme Corp"]

    def test_search_by_status(self, client: TestClient) -> None:
        response = client.get("/api/v1/invoices", params={"status": "error"})

        data = response.json()
        assert len(data) == 1
        assert data[0]["file_name"] == "broken.pdf"

    def test_search_invalid_status(self, client: TestClient) -> None:
        response = client.get("/api/v1/invoices", params={"status": "done"})

        assert response.status_code == 422

    def test_summary(self, client: TestClient) -> None:
        data = client.get("/api/v1/analytics/summary").json()

        assert data["invoice_count"] == 3
        assert data["processed_count"] == 2
        assert data["error_count"] == 1
        assert float(data["total_amount"]) == 350.0

    def test_monthly(self, client: TestClient) -> None:
        data = client.get("/api/v1/analytics/monthly").json()

        assert [(b["period_key"], b["label"], b["count"]) for b in data] == [
            ("2024-01", "Jan 2024", 1),
            ("2024-02", "Feb 2024", 1),
        ]

    def test_categories(self, client: TestClient) -> None:
        data = client.get("/api/v1/analytics/categories").json()

        assert [b["name"] for b in data] == ["Office", "Travel"]

    def test_export_csv(self, client: TestClient) -> None:
        response = client.get("/api/v1/export/csv")

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"].startswith("text/csv")
        assert "invoice_data_" in response.headers["content-disposition"]
        lines = response.text.split("\n")
        assert len(lines) == 3
        assert lines[1].startswith('INV-1,"Acme Corp",100.00')

    def test_notifications(self, client: TestClient) -> None:
        client.get("/api/v1/export/csv")

        kinds = [n["kind"] for n in client.get("/api/v1/notifications").json()]
        assert kinds == ["files_ingested", "batch_completed", "export_completed"]


def test_export_csv_empty(client: TestClient) -> None:
    response = client.get("/api/v1/export/csv")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert client.get("/api/v1/notifications").json()[-1]["kind"] == "export_empty"


def test_metrics_endpoint(client: TestClient) -> None:
    """Test Prometheus metrics endpoint."""
    client.get("/health")

    response = client.get("/metrics")

    assert response.status_code == status.HTTP_200_OK
    assert "http_requests_total" in response.text
    assert "pipeline_items_total" in response.text


def test_shutdown_closes_provider(workspace: InvoiceWorkspace) -> None:
    with TestClient(app) as client:
        assert client.get("/health").status_code == status.HTTP_200_OK
        assert workspace.pipeline.provider.closed is False

    assert workspace.pipeline.provider.closed is True
