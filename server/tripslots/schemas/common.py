"""Common Pydantic schemas."""

from datetime import date
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class Money(BaseModel):
    """Money representation with amount in minor units."""

    amount: int = Field(..., ge=0, description="Amount in minor units (e.g., paise)")
    currency: str = Field(..., min_length=3, max_length=3, pattern=r"^[A-Z]{3}$", description="ISO 4217 currency code")


class Violation(BaseModel):
    """Validation error violation."""

    path: str = Field(..., description="JSON path to the invalid field")
    message: str = Field(..., description="Validation error message")


class SlotState(BaseModel):
    """Authoritative slot capacity attached to slot-related rejections."""

    slot_id: str = Field(..., description="Slot ID")
    status: str = Field(..., description="Slot status at rejection time")
    max_capacity: int = Field(..., description="Maximum guest capacity")
    available_capacity: int = Field(..., description="Seats left at rejection time")


class Problem(BaseModel):
    """RFC 9457 Problem Details response."""

    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    code: Optional[str] = Field(None, description="Application-specific error code")
    retryable: Optional[bool] = Field(None, description="Whether the operation can be retried")
    slot: Optional[SlotState] = Field(None, description="Slot state for slot-related rejections")
    trace_id: Optional[str] = Field(None, description="Trace ID for debugging")
    violations: Optional[List[Violation]] = Field(None, description="Validation errors")


class GuestDetail(BaseModel):
    """One guest on a booking or join request."""

    # Negative ages are rejected by pricing with INVALID_GUEST_DATA, not here
    age: int = Field(..., description="Guest age in years")
    name: Optional[str] = Field(None, max_length=255, description="Guest name")
    gender: Optional[str] = Field(None, max_length=32, description="Guest gender")
    address: Optional[str] = Field(None, max_length=500, description="Guest address")

    def to_record(self) -> dict[str, Any]:
        """Dictionary form stored in JSON columns."""
        return self.model_dump(exclude_none=True)


class PriceTable(BaseModel):
    """Per-guest prices by age band, in minor units."""

    adult: int = Field(..., ge=0, description="Price for guests older than 18")
    child: int = Field(..., ge=0, description="Price for guests aged 5 to 18")
    infant: int = Field(0, ge=0, description="Price for guests younger than 5")


class DateRange(BaseModel):
    """Inclusive date window; either end may be omitted."""

    start: Optional[date] = Field(None, description="First acceptable trip date")
    end: Optional[date] = Field(None, description="Last acceptable trip date")
