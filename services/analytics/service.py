"""Aggregation engine for invoice analytics.

Pure functions over an invoice store snapshot. Nothing here holds state,
so every metric can be recomputed at any time, including on an empty
snapshot.

Grouping follows first-seen order: buckets appear in the order their key is
first encountered when scanning the snapshot in store order. That order is
stable but not chronological.
"""

from collections import OrderedDict
from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, computed_field

from services.store.models import InvoiceRecord, InvoiceStatus

ZERO = Decimal("0")


class MonthlyBucket(BaseModel):
    """Invoices grouped by calendar month of their invoice date.

    Attributes:
        period_key: 'YYYY-MM'
        count: Number of invoices in the month
        amount_sum: Sum of their amounts
    """

    period_key: str
    count: int = 0
    amount_sum: Decimal = ZERO

    @computed_field  # type: ignore[prop-decorator]
    @property
    def label(self) -> str:
        """Display label such as 'Jan 2024'."""
        year, month = self.period_key.split("-")
        return date(int(year), int(month), 1).strftime("%b %Y")


class CategoryBucket(BaseModel):
    """Invoices grouped by category label.

    Attributes:
        name: Category label
        count: Number of invoices in the category
        value_sum: Sum of their amounts
    """

    name: str
    count: int = 0
    value_sum: Decimal = ZERO


class SummaryMetrics(BaseModel):
    """Headline metrics over a snapshot.

    Averages and the success rate are taken over every record in the
    snapshot, error records included. An empty snapshot yields zeros.

    Attributes:
        invoice_count: Snapshot size
        processed_count: Records with status PROCESSED
        error_count: Records with status ERROR
        total_amount: Sum of amounts over all records (error records count as 0)
        processed_amount: Sum of amounts over PROCESSED records
        average_amount: total_amount / invoice_count
        average_confidence: Mean confidence, 0-100
        success_rate_percent: 100 * processed_count / invoice_count
    """

    invoice_count: int = 0
    processed_count: int = 0
    error_count: int = 0
    total_amount: Decimal = ZERO
    processed_amount: Decimal = ZERO
    average_amount: Decimal = ZERO
    average_confidence: float = 0.0
    success_rate_percent: float = 0.0


def period_key(day: date) -> str:
    """Return the 'YYYY-MM' grouping key for a date."""
    return f"{day.year:04d}-{day.month:02d}"


def _groupable(records: Sequence[InvoiceRecord]) -> list[InvoiceRecord]:
    # Error stubs carry no date, category or amount.
    return [r for r in records if r.status is InvoiceStatus.PROCESSED]


def monthly_breakdown(records: Sequence[InvoiceRecord]) -> list[MonthlyBucket]:
    """Group PROCESSED invoices by (year, month) of their invoice date.

    Args:
        records: Store snapshot in store order

    Returns:
        Buckets in first-seen order
    """
    buckets: OrderedDict[str, MonthlyBucket] = OrderedDict()
    for record in _groupable(records):
        if record.date is None:
            continue
        key = period_key(record.date)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = MonthlyBucket(period_key=key)
        bucket.count += 1
        bucket.amount_sum += record.amount or ZERO
    return list(buckets.values())


def category_breakdown(records: Sequence[InvoiceRecord]) -> list[CategoryBucket]:
    """Group PROCESSED invoices by category.

    Args:
        records: Store snapshot in store order

    Returns:
        Buckets in first-seen order
    """
    buckets: OrderedDict[str, CategoryBucket] = OrderedDict()
    for record in _groupable(records):
        if record.category is None:
            continue
        bucket = buckets.get(record.category)
        if bucket is None:
            bucket = buckets[record.category] = CategoryBucket(name=record.category)
        bucket.count += 1
        bucket.value_sum += record.amount or ZERO
    return list(buckets.values())


def summarize(records: Sequence[InvoiceRecord]) -> SummaryMetrics:
    """Compute summary metrics over a snapshot.

    Args:
        records: Store snapshot

    Returns:
        SummaryMetrics; all zeros for an empty snapshot
    """
    count = len(records)
    if count == 0:
        return SummaryMetrics()

    total_amount = sum((r.amount or ZERO for r in records), ZERO)
    processed = _groupable(records)
    processed_amount = sum((r.amount or ZERO for r in processed), ZERO)
    total_confidence = sum(float(r.confidence) for r in records)

    return SummaryMetrics(
        invoice_count=count,
        processed_count=len(processed),
        error_count=count - len(processed),
        total_amount=total_amount,
        processed_amount=processed_amount,
        average_amount=total_amount / count,
        average_confidence=total_confidence / count,
        success_rate_percent=100 * len(processed) / count,
    )
