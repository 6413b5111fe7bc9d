"""Models module exporting all database models."""

from .booking import Booking, PaymentStatus
from .join_request import JoinRequest, JoinRequestStatus
from .package import Package
from .slot import Slot, SlotMember, SlotStatus

__all__ = [
    # Catalog entity
    "Package",

    # Booking entity
    "Booking",
    "PaymentStatus",

    # Slot entities
    "Slot",
    "SlotMember",
    "SlotStatus",

    # Join request entity
    "JoinRequest",
    "JoinRequestStatus",
]
