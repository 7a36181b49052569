"""
Refresh orchestrator: full reload of the detail and summary tables.

A refresh walks a fixed state machine:

    IDLE -> SUSPENDING -> RELOADING -> RESUMMARIZING -> RESUMING -> IDLE

It suspends incremental maintenance, truncates both tables, re-ingests the
upstream feeds, rebuilds the summary with the batch aggregator and re-arms the
trigger. Truncate, reload and rebuild run inside one store transaction, so a
failure rolls the tables back to their previous contents. The trigger is
re-enabled on every exit path before an error is surfaced.

Usage:
    from rental_report.orchestrator import RefreshOrchestrator

    orchestrator = RefreshOrchestrator(store, feeds, trigger)
    result = orchestrator.refresh()
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Dict, FrozenSet, Optional, TypedDict

from rental_report.aggregation import Trigger, rebuild_summary
from rental_report.errors import RefreshFailure, RefreshInProgressError
from rental_report.feeds import SourceFeeds
from rental_report.ingest import InsertHook, ingest_detail
from rental_report.stores.abstract import ReportStore
from rental_report.utils.logging import get_logger
from rental_report.utils.profiler import profile_block

log = get_logger(__name__)

COMPLETION_NOTICE = "Rental report data refreshed successfully."


class RefreshState(str, Enum):
    IDLE = "idle"
    SUSPENDING = "suspending"
    RELOADING = "reloading"
    RESUMMARIZING = "resummarizing"
    RESUMING = "resuming"


# Any working phase may jump to RESUMING when a step fails.
_TRANSITIONS: Dict[RefreshState, FrozenSet[RefreshState]] = {
    RefreshState.IDLE: frozenset({RefreshState.SUSPENDING}),
    RefreshState.SUSPENDING: frozenset({RefreshState.RELOADING, RefreshState.RESUMING}),
    RefreshState.RELOADING: frozenset({RefreshState.RESUMMARIZING, RefreshState.RESUMING}),
    RefreshState.RESUMMARIZING: frozenset({RefreshState.RESUMING}),
    RefreshState.RESUMING: frozenset({RefreshState.IDLE}),
}


class RefreshResult(TypedDict, total=False):
    """
    Outcome of a completed refresh.
    """

    detail_rows: int
    summary_buckets: int
    total_transactions: int
    skipped_invalid: int
    unmatched_payment: int
    unmatched_customer: int
    duration_seconds: float
    peak_rss_bytes: Optional[int]
    notice: str


class RefreshOrchestrator:
    """
    Coordinates a full reload of the report.

    Attributes
    ----------
    lock : threading.Lock
        Writer lock held for the whole refresh. Detail inserts acquire the same
        lock, so none can land between SUSPENDING and RESUMING.
    trigger : Trigger
        The incremental maintenance switch this orchestrator owns.
    """

    def __init__(
        self,
        store: ReportStore,
        feeds: SourceFeeds,
        trigger: Optional[Trigger] = None,
        on_inserted: Optional[InsertHook] = None,
        batch_size: Optional[int] = None,
        lock: Optional[threading.Lock] = None,
    ) -> None:
        self.store = store
        self.feeds = feeds
        self.trigger = trigger or Trigger()
        self.on_inserted = on_inserted
        self.batch_size = batch_size
        self.lock = lock or threading.Lock()
        self._state = RefreshState.IDLE

    @property
    def state(self) -> RefreshState:
        return self._state

    def _transition(self, target: RefreshState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise RuntimeError(f"Illegal refresh transition {self._state.value} -> {target.value}")
        log.info(f"[REFRESH PHASE] {target.value}", extra={"from_state": self._state.value})
        self._state = target

    def refresh(self) -> RefreshResult:
        """
        Rebuild both tables from the upstream feeds.

        Raises
        ------
        RefreshInProgressError
            If another refresh (or a writer) currently holds the lock.
        RefreshFailure
            If any step fails. The trigger is enabled again and the store
            transaction rolled back before this is raised.
        """
        if not self.lock.acquire(blocking=False):
            raise RefreshInProgressError("A refresh or detail write is already in progress")
        try:
            log.info("[REFRESH START]", extra={"backend": getattr(self.store, "name", "unknown")})
            with profile_block("refresh") as stats:
                result = self._run()
        finally:
            self.lock.release()

        result["duration_seconds"] = round(stats.duration_seconds, 3)
        result["peak_rss_bytes"] = stats.peak_rss_bytes
        log.info(
            f"[REFRESH COMPLETE] {COMPLETION_NOTICE}",
            extra={
                "detail_rows": result["detail_rows"],
                "summary_buckets": result["summary_buckets"],
                "duration": result["duration_seconds"],
            },
        )
        return result

    def _run(self) -> RefreshResult:
        self._transition(RefreshState.SUSPENDING)
        self.trigger.disable()
        failure: Optional[BaseException] = None
        failed_phase = RefreshState.SUSPENDING
        try:
            with self.store.transaction():
                self._transition(RefreshState.RELOADING)
                self.store.truncate()
                ingested = ingest_detail(
                    self.store,
                    self.feeds,
                    on_inserted=self.on_inserted,
                    batch_size=self.batch_size,
                )

                self._transition(RefreshState.RESUMMARIZING)
                buckets = rebuild_summary(self.store)
        except Exception as exc:  # noqa: BLE001
            failure = exc
            failed_phase = self._state
            log.exception(f"[REFRESH FAILED] {failed_phase.value}", extra={"phase": failed_phase.value})
        finally:
            self._transition(RefreshState.RESUMING)
            self.trigger.enable()
            self._transition(RefreshState.IDLE)

        if failure is not None:
            raise RefreshFailure(failed_phase.value, str(failure)) from failure

        return RefreshResult(
            detail_rows=ingested["rows"],
            summary_buckets=len(buckets),
            total_transactions=sum(b.total_transactions for b in buckets),
            skipped_invalid=ingested["skipped_invalid"],
            unmatched_payment=ingested["unmatched_payment"],
            unmatched_customer=ingested["unmatched_customer"],
            notice=COMPLETION_NOTICE,
        )


__all__ = [
    "COMPLETION_NOTICE",
    "RefreshOrchestrator",
    "RefreshResult",
    "RefreshState",
]
