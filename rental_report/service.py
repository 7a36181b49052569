"""
Operational surface of the rental report.

`RentalReportService` wires one store, the upstream feeds, the incremental
aggregator and the refresh orchestrator together and exposes the operations a
caller invokes: ingest, single-row insert, the incremental hook, batch rebuild,
refresh, and a consistency check.

All writers share the orchestrator's lock (single-writer model). An insert that
arrives while a refresh runs waits for it to finish and is rejected with
RefreshInProgressError if that takes longer than
`Settings.insert_wait_timeout_seconds`.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator, List, Mapping, Optional, Union

from rental_report.aggregation import (
    BucketDiff,
    IncrementalAggregator,
    Trigger,
    rebuild_summary,
    verify_consistency,
)
from rental_report.config import Settings, get_settings
from rental_report.domain.models import DetailRecord, SummaryBucket
from rental_report.errors import RefreshInProgressError
from rental_report.feeds import InMemoryFeeds, PostgresFeeds, SourceFeeds
from rental_report.ingest import IngestResult, ingest_detail
from rental_report.orchestrator import RefreshOrchestrator, RefreshResult
from rental_report.stores import ReportStore, create_store
from rental_report.utils.logging import get_logger

log = get_logger(__name__)


class RentalReportService:
    def __init__(
        self,
        store: ReportStore,
        feeds: SourceFeeds,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.store = store
        self.feeds = feeds
        self.batch_size = settings.ingest_batch_size
        self.insert_wait_timeout_seconds = settings.insert_wait_timeout_seconds

        trigger = Trigger()
        self.aggregator = IncrementalAggregator(
            store, trigger=trigger, max_attempts=settings.upsert_max_attempts
        )
        self.orchestrator = RefreshOrchestrator(
            store,
            feeds,
            trigger=trigger,
            on_inserted=self.aggregator.on_detail_inserted,
            batch_size=self.batch_size,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        feeds: Optional[SourceFeeds] = None,
    ) -> "RentalReportService":
        """Build the default wiring for the configured backend."""
        settings = settings or get_settings()
        store = create_store(settings)
        if feeds is None:
            if settings.report_backend == "postgres":
                feeds = PostgresFeeds(batch_size=settings.ingest_batch_size)
            else:
                feeds = InMemoryFeeds()
        return cls(store, feeds, settings=settings)

    @property
    def trigger(self) -> Trigger:
        return self.orchestrator.trigger

    @contextmanager
    def _writer(self) -> Generator[None, None, None]:
        if not self.orchestrator.lock.acquire(timeout=self.insert_wait_timeout_seconds):
            log.warning(
                "Detail write rejected while refresh is running",
                extra={"state": self.orchestrator.state.value},
            )
            raise RefreshInProgressError(
                f"Detail write rejected: refresh still running after "
                f"{self.insert_wait_timeout_seconds}s"
            )
        try:
            yield
        finally:
            self.orchestrator.lock.release()

    def ingest_detail(self) -> IngestResult:
        """Append detail rows from the upstream feeds, maintaining the summary as they land."""
        with self._writer():
            return ingest_detail(
                self.store,
                self.feeds,
                on_inserted=self.on_detail_inserted,
                batch_size=self.batch_size,
            )

    def insert_detail(
        self, record: Union[DetailRecord, Mapping[str, Any]]
    ) -> Optional[SummaryBucket]:
        """
        Append one detail row and fold it into the summary.

        The append and the bucket update commit together.

        Raises
        ------
        InvalidInputError
            If the record is malformed; nothing is written.
        RefreshInProgressError
            If a refresh holds the writer lock past the wait timeout.
        """
        if not isinstance(record, DetailRecord):
            record = DetailRecord.from_mapping(record)
        with self._writer():
            with self.store.transaction():
                self.store.append_details([record])
                return self.on_detail_inserted(record)

    def on_detail_inserted(self, record: DetailRecord) -> Optional[SummaryBucket]:
        return self.aggregator.on_detail_inserted(record)

    def rebuild_summary(self) -> List[SummaryBucket]:
        with self._writer():
            return rebuild_summary(self.store)

    def refresh(self) -> RefreshResult:
        return self.orchestrator.refresh()

    def summary(self) -> List[SummaryBucket]:
        return self.store.list_buckets()

    def verify(self) -> List[BucketDiff]:
        return verify_consistency(self.store)


__all__ = ["RentalReportService"]
