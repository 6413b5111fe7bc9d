"""Pricing Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, Field

from .common import GuestDetail, Money


class PriceQuoteRequest(BaseModel):
    """Request schema for pricing a guest list against a package."""

    package_id: UUID = Field(..., description="Package to price")
    guest_details: list[GuestDetail] = Field(..., min_length=1, max_length=50, description="Guests to price")


class AgeBandBreakdown(BaseModel):
    """Guest counts per age band."""

    adults: int = Field(..., ge=0, description="Guests older than 18")
    children: int = Field(..., ge=0, description="Guests aged 5 to 18")
    infants: int = Field(..., ge=0, description="Guests younger than 5")


class PriceQuote(BaseModel):
    """Response schema for a price quote."""

    package_id: str = Field(..., description="Priced package")
    guest_count: int = Field(..., ge=1, description="Number of guests priced")
    breakdown: AgeBandBreakdown = Field(..., description="Guests per age band")
    total: Money = Field(..., description="Total amount")
