"""
In-process report store.

Keeps the detail rows in a list and the summary buckets in a dict keyed by
month. A single re-entrant lock serializes every read-modify-write, which makes
`upsert_bucket` atomic and lets `transaction()` hold the store for the length of
a refresh.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, Generator, Iterable, Iterator, List

from rental_report.domain.models import DetailRecord, SummaryBucket
from rental_report.stores.abstract import AbstractReportStore


class InMemoryReportStore(AbstractReportStore):
    """
    Report store backed by plain Python containers.

    `transaction()` snapshots both tables on entry and restores the snapshot if
    the block raises, so a failed refresh leaves the previous report in place.
    """

    name: str = "memory"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._details: List[DetailRecord] = []
        self._buckets: Dict[str, SummaryBucket] = {}

    def append_details(self, records: Iterable[DetailRecord]) -> int:
        batch = list(records)
        with self._lock:
            self._details.extend(batch)
        return len(batch)

    def iter_details(self) -> Iterator[DetailRecord]:
        with self._lock:
            snapshot = list(self._details)
        return iter(snapshot)

    def count_details(self) -> int:
        with self._lock:
            return len(self._details)

    def upsert_bucket(self, month_key: str, amount: Decimal) -> SummaryBucket:
        with self._lock:
            current = self._buckets.get(month_key)
            if current is None:
                bucket = SummaryBucket(month_key=month_key, total_revenue=amount, total_transactions=1)
            else:
                bucket = SummaryBucket(
                    month_key=month_key,
                    total_revenue=current.total_revenue + amount,
                    total_transactions=current.total_transactions + 1,
                )
            self._buckets[month_key] = bucket
            return bucket

    def replace_summary(self, buckets: Iterable[SummaryBucket]) -> None:
        fresh = {bucket.month_key: bucket for bucket in buckets}
        with self._lock:
            self._buckets = fresh

    def list_buckets(self) -> List[SummaryBucket]:
        with self._lock:
            return [self._buckets[key] for key in sorted(self._buckets)]

    def truncate(self) -> None:
        with self._lock:
            self._details = []
            self._buckets = {}

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        with self._lock:
            details = list(self._details)
            buckets = dict(self._buckets)
            try:
                yield
            except BaseException:
                self._details = details
                self._buckets = buckets
                raise


__all__ = ["InMemoryReportStore"]
