"""Slot-related Pydantic schemas."""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import GuestDetail


class SlotStatus(str, Enum):
    """Slot status enumeration."""
    AVAILABLE = "AVAILABLE"
    FULL = "FULL"
    CLOSED = "CLOSED"


class CreateSlotRequest(BaseModel):
    """Request schema for creating a slot with the creator's seed booking."""

    package_id: UUID = Field(..., description="Package the slot is built on")
    destination_id: UUID = Field(..., description="Destination of the trip")
    destination_name: str = Field(..., min_length=1, max_length=255, description="Destination display name")
    trip_date: date = Field(..., description="Trip date (ISO 8601)")
    guest_details: list[GuestDetail] = Field(..., min_length=1, max_length=50, description="Guests on the seed booking")
    max_capacity: Optional[int] = Field(None, ge=1, le=500, description="Maximum guests; defaults to the configured slot capacity")


class GetSlotRequest(BaseModel):
    """Request schema for getting a slot."""

    slot_id: UUID = Field(..., description="Slot to retrieve")


class FindOpenSlotRequest(BaseModel):
    """Request schema for looking up the open slot of a natural key."""

    package_id: UUID = Field(..., description="Package ID")
    destination_id: UUID = Field(..., description="Destination ID")
    trip_date: date = Field(..., description="Trip date (ISO 8601)")


class RemoveBookingRequest(BaseModel):
    """Request schema for removing a booking from a slot."""

    slot_id: UUID = Field(..., description="Slot to remove the booking from")
    booking_id: UUID = Field(..., description="Booking to remove")


class CloseSlotRequest(BaseModel):
    """Request schema for closing a slot."""

    slot_id: UUID = Field(..., description="Slot to close")


class Slot(BaseModel):
    """Slot response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Unique slot ID")
    package_id: str = Field(..., description="Associated package ID")
    destination_id: str = Field(..., description="Destination ID")
    destination_name: str = Field(..., description="Destination display name")
    slot_name: str = Field(..., description="Human-readable slot name")
    trip_date: date = Field(..., description="Trip date (ISO 8601)")
    max_capacity: int = Field(..., ge=1, description="Maximum guest capacity")
    occupied_capacity: int = Field(..., ge=0, description="Guests already admitted")
    available_capacity: int = Field(..., ge=0, description="Seats left")
    status: SlotStatus = Field(..., description="Slot status")
    creator_id: str = Field(..., description="User who created the slot")
    creator_booking_id: str = Field(..., description="Seed booking of the creator")
    booking_ids: list[str] = Field(..., description="Bookings admitted into the slot")
    created_at: datetime = Field(..., description="Creation time (ISO 8601)")
    updated_at: datetime = Field(..., description="Last update time (ISO 8601)")


class SeedBooking(BaseModel):
    """Booking written for the slot creator."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Booking ID")
    guest_count: int = Field(..., ge=1, description="Number of guests")
    base_amount: int = Field(..., ge=0, description="Amount before discounts, in minor units")
    final_amount: int = Field(..., ge=0, description="Amount payable, in minor units")
    currency: str = Field(..., description="ISO 4217 currency code")
    payment_status: str = Field(..., description="Payment status")


class CreateSlotResponse(BaseModel):
    """Response schema for slot creation."""

    slot: Slot = Field(..., description="Created slot")
    booking: SeedBooking = Field(..., description="Creator's seed booking")


class FindOpenSlotResponse(BaseModel):
    """Response schema for the open slot lookup."""

    slot: Optional[Slot] = Field(None, description="Open slot, if one exists")
