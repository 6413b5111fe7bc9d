"""Join request Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import GuestDetail


class JoinRequestStatus(str, Enum):
    """Join request status enumeration."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"


class JoinDecision(str, Enum):
    """Slot creator's answer to a join request."""
    APPROVE = "APPROVE"
    DECLINE = "DECLINE"


class SubmitJoinRequest(BaseModel):
    """Request schema for asking to join a slot with an existing booking."""

    slot_id: UUID = Field(..., description="Slot to join")
    booking_id: UUID = Field(..., description="Requester's booking")
    guest_details: list[GuestDetail] = Field(..., min_length=1, max_length=50, description="Guests joining")
    message: str = Field("", max_length=1000, description="Note for the slot creator")


class RespondToJoinRequest(BaseModel):
    """Request schema for the slot creator's decision."""

    request_id: UUID = Field(..., description="Join request to respond to")
    decision: JoinDecision = Field(..., description="APPROVE or DECLINE")
    message: Optional[str] = Field(None, max_length=1000, description="Response message for the requester")


class ApproveJoinRequest(BaseModel):
    """Request schema for approving a join request."""

    request_id: UUID = Field(..., description="Join request to approve")
    message: Optional[str] = Field(None, max_length=1000, description="Welcome message for the requester")


class DeclineJoinRequest(BaseModel):
    """Request schema for declining a join request."""

    request_id: UUID = Field(..., description="Join request to decline")
    reason: Optional[str] = Field(None, max_length=1000, description="Reason given to the requester")


class CancelJoinRequest(BaseModel):
    """Request schema for withdrawing a join request."""

    request_id: UUID = Field(..., description="Join request to cancel")


class ListPendingJoinRequests(BaseModel):
    """Request schema for the slot creator's pending inbox."""

    limit: int = Field(50, ge=1, le=200, description="Maximum requests to return")


class JoinRequest(BaseModel):
    """Join request response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Unique join request ID")
    slot_id: str = Field(..., description="Target slot ID")
    booking_id: str = Field(..., description="Requester's booking ID")
    requester_id: str = Field(..., description="User who asked to join")
    slot_creator_id: str = Field(..., description="User who decides")
    guest_count: int = Field(..., ge=1, description="Guests joining")
    guest_details: list[dict[str, Any]] = Field(default_factory=list, description="Guests joining")
    message: str = Field("", description="Requester's note")
    status: JoinRequestStatus = Field(..., description="Request status")
    response_message: str = Field("", description="Creator's response or decline reason")
    responded_at: Optional[datetime] = Field(None, description="Resolution time (ISO 8601)")
    created_at: datetime = Field(..., description="Submission time (ISO 8601)")


class PendingJoinRequestsResponse(BaseModel):
    """Response schema for pending join requests."""

    items: list[JoinRequest] = Field(..., description="Pending requests, newest first")
