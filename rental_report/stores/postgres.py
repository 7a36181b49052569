"""
PostgreSQL report store.

Persists the report in `detailed_rental_report` and `summary_rental_report`
(see `db/init.sql`). The summary table's primary key on `rental_month` lets the
bucket upsert run as one `INSERT ... ON CONFLICT DO UPDATE` statement, so two
writers can never both create the same month.
"""

from __future__ import annotations

import threading
from contextlib import AbstractContextManager, contextmanager
from decimal import Decimal
from typing import Callable, Generator, Iterable, Iterator, List, Optional

import psycopg
from psycopg import errors
from psycopg.rows import dict_row

from rental_report.config import get_settings
from rental_report.domain.models import DetailRecord, SummaryBucket
from rental_report.errors import ConcurrentUpdateConflict
from rental_report.infrastructure.db_factory import PoolManager, apply_statement_timeout
from rental_report.stores.abstract import AbstractReportStore
from rental_report.utils.logging import get_logger

log = get_logger(__name__)

ConnectionFactory = Callable[[], AbstractContextManager[psycopg.Connection]]

DETAIL_COLUMNS = "rental_id, rental_date, return_date, customer_id, customer_name, amount"

COPY_DETAILS_SQL = f"COPY detailed_rental_report ({DETAIL_COLUMNS}) FROM STDIN"
SELECT_DETAILS_SQL = f"SELECT {DETAIL_COLUMNS} FROM detailed_rental_report"
COUNT_DETAILS_SQL = "SELECT count(*) FROM detailed_rental_report"

UPSERT_BUCKET_SQL = """
INSERT INTO summary_rental_report AS s (rental_month, total_revenue, total_transactions)
VALUES (%(month_key)s, %(amount)s, 1)
ON CONFLICT (rental_month) DO UPDATE
SET total_revenue = s.total_revenue + EXCLUDED.total_revenue,
    total_transactions = s.total_transactions + 1
RETURNING rental_month, total_revenue, total_transactions
"""
INSERT_BUCKET_SQL = """
INSERT INTO summary_rental_report (rental_month, total_revenue, total_transactions)
VALUES (%s, %s, %s)
"""
DELETE_SUMMARY_SQL = "DELETE FROM summary_rental_report"
SELECT_BUCKETS_SQL = """
SELECT rental_month, total_revenue, total_transactions
FROM summary_rental_report
ORDER BY rental_month
"""
TRUNCATE_SQL = "TRUNCATE TABLE detailed_rental_report, summary_rental_report"

# Errors that mean another writer touched the same bucket first.
_CONFLICT_ERRORS = (errors.UniqueViolation, errors.SerializationFailure, errors.DeadlockDetected)


def _bucket_from_row(row: tuple) -> SummaryBucket:
    month_key, total_revenue, total_transactions = row
    return SummaryBucket(
        month_key=month_key,
        total_revenue=total_revenue,
        total_transactions=total_transactions,
    )


class PostgresReportStore(AbstractReportStore):
    """
    Report store on PostgreSQL.

    Outside `transaction()` every call borrows a pooled connection and commits
    when done. Inside `transaction()` all calls made from the same thread share one
    pinned connection and commit together. Other threads keep borrowing their
    own connections, so a reader never sees the tables half rebuilt.
    """

    name: str = "postgres"

    def __init__(
        self,
        connection_factory: Optional[ConnectionFactory] = None,
        statement_timeout_ms: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self._connection_factory = connection_factory or PoolManager().sync_connection
        self.statement_timeout_ms = (
            settings.db_statement_timeout_ms if statement_timeout_ms is None else statement_timeout_ms
        )
        self.batch_size = batch_size or settings.ingest_batch_size
        self._local = threading.local()

    @property
    def _active(self) -> Optional[psycopg.Connection]:
        """Connection pinned by `transaction()` in the calling thread, if any."""
        return getattr(self._local, "conn", None)

    @contextmanager
    def _connection(self) -> Generator[psycopg.Connection, None, None]:
        if self._active is not None:
            yield self._active
            return
        with self._connection_factory() as conn:
            with conn.cursor() as cur:
                apply_statement_timeout(cur, self.statement_timeout_ms)
            yield conn

    def append_details(self, records: Iterable[DetailRecord]) -> int:
        written = 0
        with self._connection() as conn:
            with conn.cursor() as cur:
                with cur.copy(COPY_DETAILS_SQL) as copy:
                    for record in records:
                        copy.write_row(
                            (
                                record.rental_id,
                                record.rental_date,
                                record.return_date,
                                record.customer_id,
                                record.customer_name,
                                record.amount,
                            )
                        )
                        written += 1
        return written

    def iter_details(self) -> Iterator[DetailRecord]:
        with self._connection() as conn:
            with conn.cursor(name="detail_scan", row_factory=dict_row) as cur:
                cur.execute(SELECT_DETAILS_SQL)
                while True:
                    batch = cur.fetchmany(self.batch_size)
                    if not batch:
                        break
                    for row in batch:
                        yield DetailRecord.model_validate(row)

    def count_details(self) -> int:
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(COUNT_DETAILS_SQL)
                (count,) = cur.fetchone()
        return int(count)

    def upsert_bucket(self, month_key: str, amount: Decimal) -> SummaryBucket:
        with self._connection() as conn:
            try:
                # Savepoint inside an outer transaction so a lost race can be retried.
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.execute(UPSERT_BUCKET_SQL, {"month_key": month_key, "amount": amount})
                        row = cur.fetchone()
            except _CONFLICT_ERRORS as exc:
                log.warning(
                    "Summary bucket upsert conflicted",
                    extra={"month_key": month_key, "error": type(exc).__name__},
                )
                raise ConcurrentUpdateConflict(month_key) from exc
        return _bucket_from_row(row)

    def replace_summary(self, buckets: Iterable[SummaryBucket]) -> None:
        rows = [(b.month_key, b.total_revenue, b.total_transactions) for b in buckets]
        with self._connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(DELETE_SUMMARY_SQL)
                    if rows:
                        cur.executemany(INSERT_BUCKET_SQL, rows)

    def list_buckets(self) -> List[SummaryBucket]:
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(SELECT_BUCKETS_SQL)
                return [_bucket_from_row(row) for row in cur.fetchall()]

    def truncate(self) -> None:
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(TRUNCATE_SQL)

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        if self._active is not None:
            with self._active.transaction():
                yield
            return
        with self._connection() as conn:
            self._local.conn = conn
            try:
                with conn.transaction():
                    yield
            finally:
                self._local.conn = None


__all__ = ["PostgresReportStore"]
