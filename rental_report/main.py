from __future__ import annotations

import json
import sys

import typer

from rental_report.config import get_settings
from rental_report.errors import RefreshFailure, RefreshInProgressError
from rental_report.service import RentalReportService
from rental_report.utils.logging import configure_logging

app = typer.Typer(help="Rental report maintenance CLI.")


def _service() -> RentalReportService:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    return RentalReportService.from_settings(settings)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"backend={settings.report_backend} batch={settings.ingest_batch_size} "
        f"upsert_attempts={settings.upsert_max_attempts}"
    )


@app.command()
def ingest() -> None:
    """
    Append detail rows from the upstream tables (no truncate).
    """
    result = _service().ingest_detail()
    typer.echo(json.dumps(result, indent=2))


@app.command()
def rebuild() -> None:
    """
    Recompute the summary table from the detail table.
    """
    buckets = _service().rebuild_summary()
    typer.echo(json.dumps([b.model_dump(mode="json") for b in buckets], indent=2))


@app.command()
def refresh() -> None:
    """
    Truncate and reload both tables from the upstream tables.
    """
    try:
        result = _service().refresh()
    except (RefreshFailure, RefreshInProgressError) as exc:
        typer.echo(f"Refresh failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(result["notice"])
    typer.echo(json.dumps(result, indent=2))


@app.command()
def verify() -> None:
    """
    Check the summary table against a fresh batch aggregation.
    """
    diffs = _service().verify()
    if not diffs:
        typer.echo("Summary is consistent with detail rows.")
        return
    for diff in diffs:
        expected = diff.expected.model_dump(mode="json") if diff.expected else None
        actual = diff.actual.model_dump(mode="json") if diff.actual else None
        typer.echo(f"{diff.month_key}: expected={expected} actual={actual}", err=True)
    raise typer.Exit(code=1)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
