"""
Store interfaces for the rental report.

A report store persists both the detail fact table and the monthly summary
table. Concrete stores (in-memory, PostgreSQL) implement the ReportStore
protocol so the aggregators and the refresh orchestrator never depend on the
storage layer directly.
"""

from __future__ import annotations

import abc
from contextlib import AbstractContextManager
from decimal import Decimal
from typing import Iterable, Iterator, List, Protocol, runtime_checkable

from rental_report.domain.models import DetailRecord, SummaryBucket


@runtime_checkable
class ReportStore(Protocol):
    """
    Common interface every report store implements.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier of the backend.
    """

    name: str

    def append_details(self, records: Iterable[DetailRecord]) -> int:
        """Append detail rows and return how many were written."""
        ...

    def iter_details(self) -> Iterator[DetailRecord]:
        """Iterate over every detail row currently stored."""
        ...

    def count_details(self) -> int:
        ...

    def upsert_bucket(self, month_key: str, amount: Decimal) -> SummaryBucket:
        """
        Add one transaction of `amount` to the bucket for `month_key`.

        Creates the bucket with a count of 1 when it does not exist yet. This is
        a single atomic insert-or-increment; implementations raise
        ConcurrentUpdateConflict when they lose a race and the caller retries.
        """
        ...

    def replace_summary(self, buckets: Iterable[SummaryBucket]) -> None:
        """Replace the whole summary table with `buckets`."""
        ...

    def list_buckets(self) -> List[SummaryBucket]:
        """Return all summary buckets ordered by month key."""
        ...

    def truncate(self) -> None:
        """Clear both the detail and the summary table."""
        ...

    def transaction(self) -> AbstractContextManager[None]:
        """Run the enclosed operations as a single all-or-nothing unit."""
        ...


class AbstractReportStore(abc.ABC):
    """
    ABC helper for class-based store implementations.

    Subclasses set `name` and implement the storage primitives.
    """

    name: str

    @abc.abstractmethod
    def append_details(self, records: Iterable[DetailRecord]) -> int:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def iter_details(self) -> Iterator[DetailRecord]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def count_details(self) -> int:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def upsert_bucket(self, month_key: str, amount: Decimal) -> SummaryBucket:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def replace_summary(self, buckets: Iterable[SummaryBucket]) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def list_buckets(self) -> List[SummaryBucket]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def truncate(self) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def transaction(self) -> AbstractContextManager[None]:  # pragma: no cover
        raise NotImplementedError


__all__ = ["ReportStore", "AbstractReportStore"]
