"""
Upstream record feeds consumed by the detail ingester.

The rental, payment and customer feeds are read-only. `InMemoryFeeds` holds
already-built models (tests, generated data); `PostgresFeeds` streams the
upstream tables with server-side cursors so a full reload never materializes a
whole table client-side.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Callable, Iterable, Iterator, Optional, Protocol, Sequence, Type, TypeVar, runtime_checkable

import psycopg
from psycopg.rows import dict_row
from pydantic import BaseModel, ValidationError

from rental_report.config import get_settings
from rental_report.domain.models import Customer, Payment, Rental
from rental_report.infrastructure.db_factory import PoolManager
from rental_report.utils.logging import get_logger

log = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
ConnectionFactory = Callable[[], AbstractContextManager[psycopg.Connection]]

RENTAL_SQL = "SELECT rental_id, rental_date, return_date, customer_id FROM rental ORDER BY rental_date, rental_id"
PAYMENT_SQL = "SELECT rental_id, amount FROM payment WHERE rental_id IS NOT NULL"
CUSTOMER_SQL = "SELECT customer_id, first_name, last_name FROM customer"


@runtime_checkable
class SourceFeeds(Protocol):
    """The three upstream streams the ingester joins."""

    def rentals(self) -> Iterable[Rental]:
        ...

    def payments(self) -> Iterable[Payment]:
        ...

    def customers(self) -> Iterable[Customer]:
        ...


class InMemoryFeeds:
    """Feeds backed by in-process sequences."""

    def __init__(
        self,
        rentals: Sequence[Rental] = (),
        payments: Sequence[Payment] = (),
        customers: Sequence[Customer] = (),
    ) -> None:
        self._rentals = list(rentals)
        self._payments = list(payments)
        self._customers = list(customers)

    def rentals(self) -> Iterable[Rental]:
        return iter(self._rentals)

    def payments(self) -> Iterable[Payment]:
        return iter(self._payments)

    def customers(self) -> Iterable[Customer]:
        return iter(self._customers)


def _batched_fetch(cursor: psycopg.Cursor, batch_size: int) -> Iterator[list]:
    """
    Yield batches from a cursor using fetchmany.
    """
    while True:
        batch = cursor.fetchmany(batch_size)
        if not batch:
            break
        yield batch


class PostgresFeeds:
    """
    Stream upstream tables through named (server-side) cursors.

    Rows that fail model validation are logged and skipped; one bad upstream
    row does not abort a reload.
    """

    def __init__(
        self,
        connection_factory: Optional[ConnectionFactory] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        self._connection_factory = connection_factory or PoolManager().sync_connection
        self.batch_size = batch_size or get_settings().ingest_batch_size

    def _stream(self, query: str, model: Type[ModelT], cursor_name: str) -> Iterator[ModelT]:
        with self._connection_factory() as conn:
            with conn.cursor(name=cursor_name, row_factory=dict_row) as cur:
                cur.execute(query)
                for batch in _batched_fetch(cur, self.batch_size):
                    for row in batch:
                        try:
                            yield model.model_validate(row)
                        except ValidationError as exc:
                            log.warning(
                                f"Skipping malformed {cursor_name} row",
                                extra={"row": row, "error": str(exc)},
                            )

    def rentals(self) -> Iterable[Rental]:
        return self._stream(RENTAL_SQL, Rental, "rental_feed")

    def payments(self) -> Iterable[Payment]:
        return self._stream(PAYMENT_SQL, Payment, "payment_feed")

    def customers(self) -> Iterable[Customer]:
        return self._stream(CUSTOMER_SQL, Customer, "customer_feed")


__all__ = ["SourceFeeds", "InMemoryFeeds", "PostgresFeeds"]
