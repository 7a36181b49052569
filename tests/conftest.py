"""
Pytest configuration for the rental report.

Provides fixtures for:
- Settings for the in-memory backend (unit tests) and Postgres (integration tests)
- Hand-built and generated upstream feeds
- Database connection management, schema setup and table cleanup
"""

from __future__ import annotations

import os
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Generator

import psycopg
import pytest

from rental_report.config import Settings
from rental_report.domain.models import Customer, DetailRecord, Payment, Rental
from rental_report.feeds import InMemoryFeeds
from rental_report.service import RentalReportService
from rental_report.stores.memory import InMemoryReportStore
from scripts.generate_data import _generate_feeds

GENERATED_SEED = 42
GENERATED_RENTALS = 300
GENERATED_CUSTOMERS = 40


@pytest.fixture(scope="session")
def memory_settings() -> Settings:
    """
    Settings for unit tests: in-memory backend, short insert wait.
    """
    return Settings(
        report_backend="memory",
        ingest_batch_size=7,
        upsert_max_attempts=3,
        insert_wait_timeout_seconds=0.05,
        log_level="DEBUG",
    )


@pytest.fixture
def record_factory() -> Callable[..., DetailRecord]:
    """
    Build detail records with sensible defaults; only date and amount matter to the summary.
    """
    counter = {"rental_id": 0}

    def make(rental_date: datetime, amount: str, **overrides) -> DetailRecord:
        counter["rental_id"] += 1
        fields = {
            "rental_id": counter["rental_id"],
            "rental_date": rental_date,
            "return_date": None,
            "customer_id": 341,
            "customer_name": "Peter Menard",
            "amount": Decimal(amount),
        }
        fields.update(overrides)
        return DetailRecord(**fields)

    return make


@pytest.fixture
def small_feeds() -> InMemoryFeeds:
    """
    Five rentals across two months.

    Rental 3 has two payments, rental 4 has none, rental 5 belongs to an
    unknown customer: 4 detail rows in total.
    """
    return InMemoryFeeds(
        rentals=[
            Rental(rental_id=1, rental_date=datetime(2005, 5, 24, 22, 53), return_date=datetime(2005, 5, 26), customer_id=1),
            Rental(rental_id=2, rental_date=datetime(2005, 5, 25, 11, 30), return_date=None, customer_id=2),
            Rental(rental_id=3, rental_date=datetime(2005, 6, 14, 23, 7), return_date=datetime(2005, 6, 20), customer_id=1),
            Rental(rental_id=4, rental_date=datetime(2005, 6, 15, 8, 0), return_date=None, customer_id=2),
            Rental(rental_id=5, rental_date=datetime(2005, 6, 16, 9, 0), return_date=None, customer_id=99),
        ],
        payments=[
            Payment(rental_id=1, amount=Decimal("2.99")),
            Payment(rental_id=2, amount=Decimal("0.99")),
            Payment(rental_id=3, amount=Decimal("4.99")),
            Payment(rental_id=3, amount=Decimal("1.00")),
            Payment(rental_id=5, amount=Decimal("9.99")),
        ],
        customers=[
            Customer(customer_id=1, first_name="Mary", last_name="Smith"),
            Customer(customer_id=2, first_name="Patricia", last_name="Johnson"),
        ],
    )


@pytest.fixture(scope="session")
def generated_feeds() -> InMemoryFeeds:
    """
    Deterministic synthetic feeds spanning four months.
    """
    return _generate_feeds(rentals=GENERATED_RENTALS, customers=GENERATED_CUSTOMERS, seed=GENERATED_SEED)


@pytest.fixture
def memory_service(memory_settings: Settings, small_feeds: InMemoryFeeds) -> RentalReportService:
    return RentalReportService(InMemoryReportStore(), small_feeds, settings=memory_settings)


# ---------------------------------------------------------------------------
# Postgres fixtures (integration tests)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "rental_report_test"),
        report_backend="postgres",
        ingest_batch_size=50,
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    """
    Ensure the upstream and report tables exist (db/init.sql is idempotent).
    """
    init_sql_path = Path(__file__).parent.parent / "db" / "init.sql"
    with db_connection.cursor() as cur:
        cur.execute(init_sql_path.read_text(encoding="utf-8"))
    db_connection.commit()
    return True


def _truncate_all(conn: psycopg.Connection) -> None:
    with conn.cursor() as cur:
        cur.execute(
            "TRUNCATE TABLE detailed_rental_report, summary_rental_report, payment, rental, customer;"
        )
    conn.commit()


@pytest.fixture(scope="function")
def clean_tables(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Empty upstream and report tables before and after each test function.
    """
    _truncate_all(db_connection)
    yield
    _truncate_all(db_connection)


@pytest.fixture(scope="function")
def seeded_upstream(
    clean_tables,
    generated_feeds: InMemoryFeeds,
    test_dsn: str,
    tmp_path: Path,
) -> InMemoryFeeds:
    """
    Load the generated feeds into the upstream tables and return them.
    """
    from scripts.generate_data import _copy_into_db, _write_feeds_csv

    paths = _write_feeds_csv(generated_feeds, tmp_path)
    _copy_into_db(test_dsn, paths)
    return generated_feeds
