"""Domain events handed to the notification dispatcher."""

from datetime import date, datetime, timezone

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DomainEvent(BaseModel):
    """Base class for outbound slot events."""

    occurred_at: datetime = Field(default_factory=_now, description="Event time (ISO 8601)")

    @property
    def event_type(self) -> str:
        return type(self).__name__


class SlotCreated(DomainEvent):
    """A new slot is open for joining."""

    slot_id: str
    package_id: str
    destination_name: str
    trip_date: date
    available_capacity: int


class JoinRequestSubmitted(DomainEvent):
    """Sent to the slot creator when someone asks to join."""

    slot_id: str
    request_id: str
    creator_id: str
    guest_count: int


class JoinRequestApproved(DomainEvent):
    """Sent to the requester once admitted."""

    request_id: str
    requester_id: str
    slot_id: str


class JoinRequestDeclined(DomainEvent):
    """Sent to the requester when declined, explicitly or for lack of capacity."""

    request_id: str
    requester_id: str
    reason: str


class SlotBecameFull(DomainEvent):
    """Sent to all members when the last seat is taken."""

    slot_id: str
    member_booking_ids: list[str]
