"""
Detail ingester: joins the upstream feeds into detail rows.

Each rental is joined to its payments by rental id and to its customer by
customer id, producing one DetailRecord per (rental, payment) pair. Rentals
without a payment or a customer drop out of the join silently (they are only
counted); rows with a missing rental date or an out-of-range amount are logged
and skipped without failing the load.

Re-running the ingester without clearing the detail store appends duplicates;
the refresh orchestrator truncates first.
"""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, TypedDict

from rental_report.config import get_settings
from rental_report.domain.models import Customer, DetailRecord, Payment, Rental
from rental_report.errors import InvalidInputError
from rental_report.feeds import SourceFeeds
from rental_report.stores.abstract import ReportStore
from rental_report.utils.logging import get_logger

log = get_logger(__name__)

InsertHook = Callable[[DetailRecord], object]


class IngestResult(TypedDict, total=False):
    """
    Outcome of one ingestion run.
    """

    rows: int
    skipped_invalid: int
    unmatched_payment: int
    unmatched_customer: int
    duration_seconds: float


@dataclass
class JoinResult:
    """Detail rows produced by the join plus the counts of what fell out of it."""

    records: List[DetailRecord] = field(default_factory=list)
    skipped_invalid: int = 0
    unmatched_payment: int = 0
    unmatched_customer: int = 0


def join_feeds(
    rentals: Iterable[Rental],
    payments: Iterable[Payment],
    customers: Iterable[Customer],
) -> JoinResult:
    """
    Inner-join rentals to payments and customers.

    Records come back ordered by rental date (then rental id). The ordering is
    cosmetic; neither aggregator depends on it.
    """
    payments_by_rental: Dict[int, List[Payment]] = defaultdict(list)
    for payment in payments:
        payments_by_rental[payment.rental_id].append(payment)
    customers_by_id = {customer.customer_id: customer for customer in customers}

    result = JoinResult()
    dated: List[Rental] = []
    for rental in rentals:
        if rental.rental_date is None:
            log.warning(
                "Skipping rental without a rental date",
                extra={"rental_id": rental.rental_id},
            )
            result.skipped_invalid += 1
            continue
        dated.append(rental)
    dated.sort(key=lambda r: (r.rental_date, r.rental_id))

    for rental in dated:
        customer = customers_by_id.get(rental.customer_id)
        if customer is None:
            result.unmatched_customer += 1
            log.debug("Rental has no matching customer", extra={"rental_id": rental.rental_id})
            continue
        rental_payments = payments_by_rental.get(rental.rental_id)
        if not rental_payments:
            result.unmatched_payment += 1
            log.debug("Rental has no matching payment", extra={"rental_id": rental.rental_id})
            continue
        for payment in rental_payments:
            try:
                record = DetailRecord.from_mapping(
                    {
                        "rental_id": rental.rental_id,
                        "rental_date": rental.rental_date,
                        "return_date": rental.return_date,
                        "customer_id": customer.customer_id,
                        "customer_name": customer.display_name,
                        "amount": payment.amount,
                    }
                )
            except InvalidInputError as exc:
                log.warning(
                    "Skipping invalid detail row",
                    extra={"rental_id": rental.rental_id, "error": str(exc)},
                )
                result.skipped_invalid += 1
                continue
            result.records.append(record)

    return result


def _chunks(records: Sequence[DetailRecord], size: int) -> Iterator[Sequence[DetailRecord]]:
    for start in range(0, len(records), size):
        yield records[start : start + size]


def ingest_detail(
    store: ReportStore,
    feeds: SourceFeeds,
    on_inserted: Optional[InsertHook] = None,
    batch_size: Optional[int] = None,
) -> IngestResult:
    """
    Load detail rows from the upstream feeds into the store.

    Parameters
    ----------
    store : ReportStore
        Destination detail store.
    feeds : SourceFeeds
        Upstream rental, payment and customer feeds.
    on_inserted : callable | None
        Called once per record after the batch holding it has been appended,
        inside the same store transaction; if it raises, the batch is rolled
        back.
        The incremental aggregator's hook goes here; it is a no-op while a
        refresh has the trigger suspended.
    batch_size : int | None
        Rows per append batch. Defaults to settings.ingest_batch_size.
    """
    size = batch_size or get_settings().ingest_batch_size
    start = time.perf_counter()

    joined = join_feeds(feeds.rentals(), feeds.payments(), feeds.customers())

    written = 0
    for batch in _chunks(joined.records, size):
        # A batch and its summary updates land together or not at all.
        with store.transaction():
            appended = store.append_details(batch)
            if on_inserted is not None:
                for record in batch:
                    on_inserted(record)
        written += appended

    duration = time.perf_counter() - start
    log.info(
        "Detail rows ingested",
        extra={
            "rows": written,
            "skipped_invalid": joined.skipped_invalid,
            "unmatched_payment": joined.unmatched_payment,
            "unmatched_customer": joined.unmatched_customer,
        },
    )
    return IngestResult(
        rows=written,
        skipped_invalid=joined.skipped_invalid,
        unmatched_payment=joined.unmatched_payment,
        unmatched_customer=joined.unmatched_customer,
        duration_seconds=duration,
    )


__all__ = ["IngestResult", "JoinResult", "join_feeds", "ingest_detail"]
