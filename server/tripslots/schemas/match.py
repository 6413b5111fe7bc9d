"""Slot matching Pydantic schemas."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .common import DateRange
from .slot import Slot


class MatchQuery(BaseModel):
    """A solo traveler's preferences for slot recommendations."""

    destination_id: Optional[UUID] = Field(None, description="Preferred destination ID")
    destination_name: Optional[str] = Field(None, max_length=255, description="Destination name fragment")
    preferred_date_range: Optional[DateRange] = Field(None, description="Acceptable trip dates")
    budget: Optional[int] = Field(None, ge=0, description="Budget per adult, in minor units")
    category: Optional[str] = Field(None, max_length=64, description="Package category")
    package_type: Optional[str] = Field(None, max_length=64, description="Package type")
    travel_style: Optional[str] = Field(None, max_length=64, description="Matched against package features")
    min_available: int = Field(1, ge=1, description="Seats the traveler needs")
    limit: Optional[int] = Field(None, ge=1, description="Maximum results; capped by configuration")


class SimilarSlotsRequest(BaseModel):
    """Request schema for alternatives to a given slot."""

    slot_id: UUID = Field(..., description="Reference slot")
    limit: int = Field(5, ge=1, le=20, description="Maximum results")


class PackageSummary(BaseModel):
    """Package fields shown alongside a recommendation."""

    id: str = Field(..., description="Package ID")
    title: str = Field(..., description="Package title")
    duration: Optional[str] = Field(None, description="Package duration")
    category: Optional[str] = Field(None, description="Package category")
    package_type: Optional[str] = Field(None, description="Package type")
    price_adult: int = Field(..., ge=0, description="Adult price, in minor units")
    currency: str = Field(..., description="ISO 4217 currency code")


class SlotMatch(BaseModel):
    """One ranked recommendation."""

    slot: Slot = Field(..., description="Recommended slot")
    package: PackageSummary = Field(..., description="Package of the slot")
    score: int = Field(..., ge=0, description="Raw match score")
    match_percentage: int = Field(..., ge=0, le=100, description="Score scaled to 0-100")


class MatchResponse(BaseModel):
    """Response schema for match searches."""

    items: list[SlotMatch] = Field(..., description="Recommendations, best first")
    total: int = Field(..., ge=0, description="Number of recommendations returned")
