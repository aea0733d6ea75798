#!/usr/bin/env python3
"""Process a batch of invoice files from disk and print analytics.

Ingests every given file, runs one pipeline batch with the configured
extraction provider, prints the summary, monthly and category breakdowns,
and optionally writes the CSV export.

Usage:
    python -m scripts.process_batch invoices/*.pdf --output invoices.csv
    APP_EXTRACTION_PROVIDER=http python -m scripts.process_batch scan.png
"""

import argparse
import asyncio
import logging
import mimetypes
import sys
from pathlib import Path

from services.ingestion.models import RawDocument
from services.shared.config import Settings, get_settings
from services.shared.errors import EmptyExportError
from services.workspace.service import InvoiceWorkspace

logger = logging.getLogger(__name__)


def load_document(path: Path) -> RawDocument:
    """Read a file into a RawDocument, guessing its media type from the extension."""
    media_type, _ = mimetypes.guess_type(path.name)
    return RawDocument(
        name=path.name,
        content=path.read_bytes(),
        media_type=media_type or "application/octet-stream",
    )


async def process_files(paths: list[Path], settings: Settings) -> InvoiceWorkspace:
    """Ingest and process files in a fresh workspace.

    Args:
        paths: Files to process
        settings: Application settings

    Returns:
        Workspace holding the results; its extraction provider is closed
    """
    workspace = InvoiceWorkspace(settings)
    try:
        created, rejected = workspace.upload_many([load_document(p) for p in paths])
        for error in rejected:
            print(f"  rejected: {error.message}")

        if created:
            async for event in workspace.submit_batch(created):
                if event.is_terminal:
                    detail = f" ({event.error})" if event.error else ""
                    print(
                        f"  [{workspace.progress():6.1%}] {event.file_id[:8]} "
                        f"-> {event.new_status}{detail}"
                    )
    finally:
        await workspace.aclose()
    return workspace


def print_report(workspace: InvoiceWorkspace) -> None:
    """Print summary metrics and breakdowns."""
    summary = workspace.summary()
    print("\n" + "=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"Invoices          | {summary.invoice_count}")
    print(f"Processed / Error | {summary.processed_count} / {summary.error_count}")
    print(f"Total Value       | {summary.total_amount:,.2f}")
    print(f"Avg Amount        | {summary.average_amount:,.2f}")
    print(f"Avg Confidence    | {summary.average_confidence:.1f}%")
    print(f"Success Rate      | {summary.success_rate_percent:.1f}%")

    print("\nMonth      | Count | Amount")
    print("-" * 40)
    for month in workspace.monthly_breakdown():
        print(f"{month.label:<10} | {month.count:>5} | {month.amount_sum:,.2f}")

    print("\nCategory                  | Count | Value")
    print("-" * 50)
    for category in workspace.category_breakdown():
        print(f"{category.name:<25} | {category.count:>5} | {category.value_sum:,.2f}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Process invoice files and report analytics")
    parser.add_argument("paths", nargs="+", type=Path, help="Invoice files to process")
    parser.add_argument("--output", type=Path, help="Write processed invoices to this CSV file")
    parser.add_argument(
        "--concurrency", type=int, help="Documents extracted concurrently (overrides settings)"
    )
    args = parser.parse_args()

    settings = get_settings()
    if args.concurrency is not None:
        settings = settings.model_copy(update={"pipeline_concurrency": max(1, args.concurrency)})

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    missing = [p for p in args.paths if not p.is_file()]
    if missing:
        parser.error(f"not a file: {', '.join(str(p) for p in missing)}")

    print(f"Processing {len(args.paths)} file(s) with provider '{settings.extraction_provider}'")
    workspace = asyncio.run(process_files(args.paths, settings))
    print_report(workspace)

    if args.output:
        try:
            args.output.write_text(workspace.export_csv() + "\n", encoding="utf-8")
        except EmptyExportError as e:
            print(f"\nNothing exported: {e.message}")
            return 1
        print(f"\nWrote {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
