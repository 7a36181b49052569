"""
Monthly summary aggregation: incremental and batch.

Two paths produce the same summary table:

- `IncrementalAggregator.on_detail_inserted` adds each new detail row to its
  month's bucket as the row is appended.
- `summarize` / `rebuild_summary` group the whole detail table by month key.

Both bucket through `extract_month_key` and both start a bucket from the first
amount, so for any detail set the incremental state equals the batch result.
`verify_consistency` compares the two.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from rental_report.config import get_settings
from rental_report.domain.models import DetailRecord, SummaryBucket
from rental_report.domain.month_key import extract_month_key
from rental_report.errors import ConcurrentUpdateConflict
from rental_report.stores.abstract import ReportStore
from rental_report.utils.logging import get_logger

log = get_logger(__name__)


class Trigger:
    """
    Enable flag for incremental maintenance.

    The refresh orchestrator owns the instance and flips it around a reload;
    the incremental aggregator only reads it.
    """

    def __init__(self, enabled: bool = True) -> None:
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def disable(self) -> None:
        self._enabled = False

    def enable(self) -> None:
        self._enabled = True

    def __repr__(self) -> str:
        return f"Trigger(enabled={self._enabled})"


class IncrementalAggregator:
    """
    Keeps summary buckets current as detail rows are appended.
    """

    def __init__(
        self,
        store: ReportStore,
        trigger: Optional[Trigger] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        self._store = store
        self.trigger = trigger or Trigger()
        self.max_attempts = max_attempts or get_settings().upsert_max_attempts

    def on_detail_inserted(self, record: DetailRecord) -> Optional[SummaryBucket]:
        """
        Fold one freshly appended detail row into its month bucket.

        Returns the updated bucket, or None when the trigger is disabled.

        Raises
        ------
        InvalidInputError
            If the record has no usable rental date. No bucket is touched.
        ConcurrentUpdateConflict
            If the upsert still conflicts after `max_attempts` tries.
        """
        if not self.trigger.enabled:
            log.debug("Trigger disabled; skipping incremental update", extra={"rental_id": record.rental_id})
            return None

        # Key first: a bad date must fail before any bucket is written.
        month_key = extract_month_key(record.rental_date)

        for attempt in Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.01, max=0.5),
            retry=retry_if_exception_type(ConcurrentUpdateConflict),
            reraise=True,
        ):
            with attempt:
                bucket = self._store.upsert_bucket(month_key, record.amount)
        return bucket


def summarize(records: Iterable[DetailRecord]) -> List[SummaryBucket]:
    """
    Group detail rows by month key and total them.

    The grouping does not depend on input order; the returned list is sorted by
    month key only so output is stable.
    """
    revenue: Dict[str, Decimal] = {}
    counts: Dict[str, int] = defaultdict(int)
    for record in records:
        month_key = extract_month_key(record.rental_date)
        if month_key in revenue:
            revenue[month_key] += record.amount
        else:
            revenue[month_key] = record.amount
        counts[month_key] += 1

    return [
        SummaryBucket(month_key=key, total_revenue=revenue[key], total_transactions=counts[key])
        for key in sorted(revenue)
    ]


def rebuild_summary(store: ReportStore) -> List[SummaryBucket]:
    """
    Recompute the summary table from the detail table and store it.

    Reading the details and replacing the summary happen in one store
    transaction, so calling this twice without detail changes is a no-op the
    second time.
    """
    with store.transaction():
        buckets = summarize(store.iter_details())
        store.replace_summary(buckets)
    log.info(
        "Summary rebuilt",
        extra={
            "buckets": len(buckets),
            "transactions": sum(b.total_transactions for b in buckets),
        },
    )
    return buckets


@dataclass(frozen=True)
class BucketDiff:
    """A month whose stored bucket disagrees with the batch result."""

    month_key: str
    expected: Optional[SummaryBucket]
    actual: Optional[SummaryBucket]


def verify_consistency(store: ReportStore) -> List[BucketDiff]:
    """
    Compare the stored summary with a fresh batch aggregation.

    Returns the differing months ordered by key; an empty list means the
    incremental state matches the batch result bucket for bucket.
    """
    with store.transaction():
        expected = {b.month_key: b for b in summarize(store.iter_details())}
        actual = {b.month_key: b for b in store.list_buckets()}

    diffs = [
        BucketDiff(month_key=key, expected=expected.get(key), actual=actual.get(key))
        for key in sorted(expected.keys() | actual.keys())
        if expected.get(key) != actual.get(key)
    ]
    if diffs:
        log.warning(
            "Summary diverges from detail rows",
            extra={"months": [d.month_key for d in diffs]},
        )
    return diffs


__all__ = [
    "Trigger",
    "IncrementalAggregator",
    "summarize",
    "rebuild_summary",
    "BucketDiff",
    "verify_consistency",
]
