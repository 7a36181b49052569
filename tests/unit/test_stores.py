from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal

import pytest
from psycopg import errors

from rental_report.errors import ConcurrentUpdateConflict
from rental_report.stores import available_backends, create_store
from rental_report.stores.memory import InMemoryReportStore
from rental_report.stores.postgres import PostgresReportStore

THREADS = 8
UPSERTS_PER_THREAD = 50


def test_memory_transaction_restores_both_tables_on_error(record_factory):
    store = InMemoryReportStore()
    store.append_details([record_factory(datetime(2005, 5, 24), "2.99")])
    store.upsert_bucket("2005-05", Decimal("2.99"))

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.truncate()
            store.upsert_bucket("2005-06", Decimal("1.00"))
            raise RuntimeError("boom")

    assert store.count_details() == 1
    assert [b.month_key for b in store.list_buckets()] == ["2005-05"]


def test_memory_upsert_is_atomic_under_concurrent_writers():
    store = InMemoryReportStore()

    def hammer() -> None:
        for _ in range(UPSERTS_PER_THREAD):
            store.upsert_bucket("2005-07", Decimal("0.99"))

    threads = [threading.Thread(target=hammer) for _ in range(THREADS)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    (bucket,) = store.list_buckets()
    assert bucket.total_transactions == THREADS * UPSERTS_PER_THREAD
    assert bucket.total_revenue == Decimal("0.99") * THREADS * UPSERTS_PER_THREAD


def test_create_store_resolves_backends(memory_settings):
    assert available_backends() == ["memory", "postgres"]
    assert isinstance(create_store(memory_settings), InMemoryReportStore)

    with pytest.raises(ValueError, match="Unknown report backend"):
        create_store(memory_settings.model_copy(update={"report_backend": "sqlite"}))


class _FakeCursor:
    def __init__(self, conn: "_FakeConnection") -> None:
        self._conn = conn

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb

    def execute(self, query, params=None) -> None:
        self._conn.executed.append(query)
        if self._conn.fail_with is not None:
            raise self._conn.fail_with

    def fetchone(self):
        return ("2005-06", Decimal("4.99"), 1)


class _FakeConnection:
    def __init__(self, fail_with: Exception | None = None) -> None:
        self.fail_with = fail_with
        self.executed: list = []
        self.transactions = 0

    def cursor(self, *args, **kwargs) -> _FakeCursor:
        del args, kwargs
        return _FakeCursor(self)

    @contextmanager
    def transaction(self):
        self.transactions += 1
        yield


def _store_for(conn: _FakeConnection) -> PostgresReportStore:
    @contextmanager
    def factory():
        yield conn

    return PostgresReportStore(connection_factory=factory, statement_timeout_ms=0, batch_size=10)


def test_postgres_upsert_runs_single_statement_and_returns_bucket():
    conn = _FakeConnection()
    store = _store_for(conn)

    bucket = store.upsert_bucket("2005-06", Decimal("4.99"))

    assert bucket.month_key == "2005-06"
    assert bucket.total_transactions == 1
    assert len(conn.executed) == 1
    assert "ON CONFLICT (rental_month) DO UPDATE" in conn.executed[0]
    assert conn.transactions == 1


@pytest.mark.parametrize("error_cls", [errors.UniqueViolation, errors.SerializationFailure])
def test_postgres_upsert_translates_races_into_conflicts(error_cls):
    store = _store_for(_FakeConnection(fail_with=error_cls("race")))

    with pytest.raises(ConcurrentUpdateConflict) as excinfo:
        store.upsert_bucket("2005-06", Decimal("4.99"))

    assert excinfo.value.month_key == "2005-06"
    assert isinstance(excinfo.value.__cause__, error_cls)


def test_postgres_transaction_pins_one_connection():
    conn = _FakeConnection()
    calls = []

    @contextmanager
    def factory():
        calls.append(1)
        yield conn

    store = PostgresReportStore(connection_factory=factory, statement_timeout_ms=0, batch_size=10)
    with store.transaction():
        store.upsert_bucket("2005-06", Decimal("4.99"))
        store.upsert_bucket("2005-06", Decimal("1.00"))

    assert len(calls) == 1
    assert store._active is None


def test_postgres_transaction_pin_is_private_to_its_thread():
    handed_out = []

    @contextmanager
    def factory():
        conn = _FakeConnection()
        handed_out.append(conn)
        yield conn

    store = PostgresReportStore(connection_factory=factory, statement_timeout_ms=0, batch_size=10)
    seen = {}

    def reader() -> None:
        with store._connection() as conn:
            seen["reader"] = conn
        seen["reader_pinned"] = store._active

    with store.transaction():
        pinned = store._active
        thread = threading.Thread(target=reader)
        thread.start()
        thread.join()
        with store._connection() as conn:
            assert conn is pinned

    assert pinned is handed_out[0]
    assert seen["reader"] is not pinned
    assert seen["reader"] is handed_out[1]
    assert seen["reader_pinned"] is None
