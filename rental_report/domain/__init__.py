"""
Domain package for the rental report.

Exports the record models and the month-key rule shared by both aggregators.
Keep this package focused on data definitions and validation concerns.
"""

from rental_report.domain.models import Customer, DetailRecord, Payment, Rental, SummaryBucket
from rental_report.domain.month_key import MONTH_KEY_PATTERN, extract_month_key

__all__ = [
    "Customer",
    "DetailRecord",
    "Payment",
    "Rental",
    "SummaryBucket",
    "MONTH_KEY_PATTERN",
    "extract_month_key",
]
