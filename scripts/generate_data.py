"""
Synthetic upstream data for the rental report.

Generates deterministic customers, rentals and payments shaped like the DVD
rental sample database: rentals spread over a set of months, some without a
payment, some with several, and a few pointing at unknown customers. The data
can be used in-process (`_generate_feeds`) or written to CSV and loaded into the
upstream `customer`, `rental` and `payment` tables with Postgres COPY.
"""

from __future__ import annotations

import csv
import random
import sys
import tempfile
import time
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Sequence

import psycopg
import typer

from rental_report.domain.models import Customer, Payment, Rental
from rental_report.feeds import InMemoryFeeds
from rental_report.infrastructure.db_factory import build_dsn

app = typer.Typer(help="Generate synthetic rental/payment/customer data and load into Postgres.")

DEFAULT_MONTHS = ("2005-05", "2005-06", "2005-07", "2005-08")
FIRST_NAMES = ["Mary", "Patricia", "Linda", "Barbara", "Peter", "Jared", "Tammy", "Ely"]
LAST_NAMES = ["Smith", "Johnson", "Williams", "Jones", "Menard", "Ely", "Sanders", "Brown"]
PRICE_POINTS = [Decimal("0.99"), Decimal("2.99"), Decimal("4.99"), Decimal("5.99"), Decimal("10.99")]


def _build_dsn(dsn_override: str | None) -> str:
    if dsn_override:
        return dsn_override
    return build_dsn()


def _generate_feeds(
    rentals: int,
    customers: int,
    seed: int,
    months: Sequence[str] = DEFAULT_MONTHS,
) -> InMemoryFeeds:
    rng = random.Random(seed)

    customer_rows = [
        Customer(
            customer_id=customer_id,
            first_name=rng.choice(FIRST_NAMES),
            last_name=rng.choice(LAST_NAMES),
        )
        for customer_id in range(1, customers + 1)
    ]

    rental_rows: list[Rental] = []
    payment_rows: list[Payment] = []
    for rental_id in range(1, rentals + 1):
        year, month = (int(part) for part in rng.choice(months).split("-"))
        rental_date = datetime(year, month, rng.randint(1, 28), rng.randint(0, 23), rng.randint(0, 59))
        return_date = None if rng.random() < 0.1 else rental_date + timedelta(days=rng.randint(1, 9))
        # ~5% of rentals reference a customer that does not exist upstream.
        customer_id = customers + 1 if rng.random() < 0.05 else rng.randint(1, customers)
        rental_rows.append(
            Rental(
                rental_id=rental_id,
                rental_date=rental_date,
                return_date=return_date,
                customer_id=customer_id,
            )
        )

        roll = rng.random()
        payment_count = 0 if roll < 0.1 else (2 if roll > 0.9 else 1)
        for _ in range(payment_count):
            payment_rows.append(Payment(rental_id=rental_id, amount=rng.choice(PRICE_POINTS)))

    return InMemoryFeeds(rentals=rental_rows, payments=payment_rows, customers=customer_rows)


def _write_feeds_csv(feeds: InMemoryFeeds, output_dir: Path) -> dict[str, Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    paths = {
        "customer": output_dir / "customer.csv",
        "rental": output_dir / "rental.csv",
        "payment": output_dir / "payment.csv",
    }
    with paths["customer"].open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["customer_id", "first_name", "last_name"])
        writer.writerows([c.customer_id, c.first_name, c.last_name] for c in feeds.customers())
    with paths["rental"].open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["rental_id", "rental_date", "return_date", "customer_id"])
        writer.writerows(
            [
                r.rental_id,
                r.rental_date.isoformat() if r.rental_date else "",
                r.return_date.isoformat() if r.return_date else "",
                r.customer_id,
            ]
            for r in feeds.rentals()
        )
    with paths["payment"].open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["rental_id", "amount"])
        writer.writerows([p.rental_id, f"{p.amount:.2f}"] for p in feeds.payments())
    return paths


def _copy_into_db(dsn: str, paths: dict[str, Path]) -> None:
    columns = {
        "customer": "customer_id, first_name, last_name",
        "rental": "rental_id, rental_date, return_date, customer_id",
        "payment": "rental_id, amount",
    }
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            for table in ("customer", "rental", "payment"):
                with cur.copy(
                    f"COPY {table} ({columns[table]}) FROM STDIN WITH (FORMAT csv, HEADER TRUE)"
                ) as copy:
                    with paths[table].open("r", encoding="utf-8") as f:
                        for line in f:
                            copy.write(line)
        conn.commit()


@app.command()
def main(
    rentals: int = typer.Option(1_000, "--rentals", "-r", help="Number of rentals to generate."),
    customers: int = typer.Option(100, "--customers", "-c", help="Number of customers to generate."),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Optional CSV output directory (if omitted, a temp directory will be used).",
    ),
    dsn: str | None = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
    no_load: bool = typer.Option(False, "--no-load", help="Only generate CSV; skip loading into Postgres."),
) -> None:
    """
    Generate synthetic upstream data and optionally load it into Postgres using COPY.
    """
    start = time.perf_counter()
    output_dir = output or Path(tempfile.mkdtemp(prefix="rental_feeds_"))

    typer.echo(f"Generating {rentals:,} rentals for {customers:,} customers -> {output_dir} (seed={seed})")
    feeds = _generate_feeds(rentals=rentals, customers=customers, seed=seed)
    paths = _write_feeds_csv(feeds, output_dir)
    typer.echo(f"CSV generation completed in {time.perf_counter() - start:.2f}s")

    if no_load:
        typer.echo("Skipping load (no-load flag set).")
        return

    load_start = time.perf_counter()
    typer.echo("Loading CSV into Postgres via COPY...")
    _copy_into_db(_build_dsn(dsn), paths)
    typer.echo(f"Load completed in {time.perf_counter() - load_start:.2f}s.")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
