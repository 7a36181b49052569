"""
Rental report - monthly revenue summary over DVD rental transactions.

This package maintains two tables derived from the rental, payment and customer
records of a transactional store:

- a denormalized detail table, one row per rental payment
- a monthly summary table with revenue and transaction totals

The summary is kept current incrementally as detail rows arrive, can be rebuilt
from scratch by a batch aggregator, and is periodically reloaded end to end by
the refresh orchestrator, which suspends incremental maintenance for the
duration of the reload.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from rental_report.aggregation import (
    IncrementalAggregator,
    Trigger,
    rebuild_summary,
    summarize,
    verify_consistency,
)
from rental_report.config import Settings, get_settings
from rental_report.domain import DetailRecord, SummaryBucket, extract_month_key
from rental_report.errors import (
    ConcurrentUpdateConflict,
    InvalidInputError,
    RefreshFailure,
    RefreshInProgressError,
    RentalReportError,
)
from rental_report.ingest import ingest_detail
from rental_report.orchestrator import RefreshOrchestrator, RefreshState
from rental_report.service import RentalReportService
from rental_report.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "DetailRecord",
    "SummaryBucket",
    "extract_month_key",
    # Aggregation
    "IncrementalAggregator",
    "Trigger",
    "rebuild_summary",
    "summarize",
    "verify_consistency",
    # Ingestion and refresh
    "ingest_detail",
    "RefreshOrchestrator",
    "RefreshState",
    "RentalReportService",
    # Errors
    "RentalReportError",
    "InvalidInputError",
    "ConcurrentUpdateConflict",
    "RefreshFailure",
    "RefreshInProgressError",
    # Logging
    "configure_logging",
    "get_logger",
]
