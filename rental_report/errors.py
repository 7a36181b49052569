"""
Exception hierarchy for the rental report.

Record-level problems (`InvalidInputError`) are raised to the caller of a single
insert and logged-and-skipped during bulk ingestion. Refresh problems surface as
`RefreshFailure` only after incremental maintenance has been re-armed.
"""

from __future__ import annotations


class RentalReportError(Exception):
    """Base class for all rental report errors."""


class InvalidInputError(RentalReportError, ValueError):
    """A detail record or point-in-time value is missing or malformed."""


class ConcurrentUpdateConflict(RentalReportError):
    """A summary bucket upsert lost a race with another writer; safe to retry."""

    def __init__(self, month_key: str, message: str | None = None) -> None:
        self.month_key = month_key
        super().__init__(message or f"Concurrent update on summary bucket {month_key!r}")


class RefreshFailure(RentalReportError):
    """A refresh step failed. The trigger was re-enabled before this was raised."""

    def __init__(self, phase: str, message: str) -> None:
        self.phase = phase
        super().__init__(f"Refresh failed during {phase}: {message}")


class RefreshInProgressError(RentalReportError):
    """A detail insert was rejected because a refresh held the writer lock."""


__all__ = [
    "RentalReportError",
    "InvalidInputError",
    "ConcurrentUpdateConflict",
    "RefreshFailure",
    "RefreshInProgressError",
]
