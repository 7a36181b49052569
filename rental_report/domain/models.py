"""
Domain models for the rental report.

Upstream feed rows (`Rental`, `Payment`, `Customer`) are read-only inputs. The
report owns two record shapes: `DetailRecord`, one per matched rental/payment
pair, and `SummaryBucket`, one per month key. Column names line up with
`db/init.sql`.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from rental_report.domain.month_key import MONTH_KEY_PATTERN
from rental_report.errors import InvalidInputError

_FROZEN = {"frozen": True, "populate_by_name": True}


class Rental(BaseModel):
    """
    A row of the upstream `rental` table.

    `rental_date` is optional here so that a malformed upstream row reaches the
    ingester, which logs and skips it instead of failing the whole load.
    """

    rental_id: int
    rental_date: Optional[datetime] = None
    return_date: Optional[datetime] = None
    customer_id: int

    model_config = _FROZEN


class Payment(BaseModel):
    """A row of the upstream `payment` table."""

    rental_id: int
    amount: Decimal

    model_config = _FROZEN


class Customer(BaseModel):
    """A row of the upstream `customer` table."""

    customer_id: int
    first_name: str
    last_name: str

    model_config = _FROZEN

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class DetailRecord(BaseModel):
    """
    Representation of a single row in the `detailed_rental_report` table.
    """

    rental_id: int = Field(..., description="Rental identifier; repeats when a rental has several payments.")
    rental_date: datetime = Field(..., description="When the rental started; drives the month key.")
    return_date: Optional[datetime] = Field(None, description="When the rental came back, if it has.")
    customer_id: int = Field(..., description="Paying customer identifier.")
    customer_name: str = Field(..., description="First and last name of the customer.")
    amount: Decimal = Field(..., max_digits=10, decimal_places=2, description="Payment amount.")

    model_config = _FROZEN

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "DetailRecord":
        """
        Validate raw input into a DetailRecord.

        Raises
        ------
        InvalidInputError
            If a field is missing or malformed (notably the rental date).
        """
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            raise InvalidInputError(f"Invalid detail record: {exc}") from exc


class SummaryBucket(BaseModel):
    """
    Representation of a single row in the `summary_rental_report` table.
    """

    month_key: str = Field(..., pattern=MONTH_KEY_PATTERN, description="Calendar month, YYYY-MM.")
    total_revenue: Decimal = Field(..., description="Sum of detail amounts for the month.")
    total_transactions: int = Field(..., ge=0, description="Number of detail rows for the month.")

    model_config = _FROZEN


__all__ = ["Rental", "Payment", "Customer", "DetailRecord", "SummaryBucket"]
