"""Slot join request model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, utcnow

if TYPE_CHECKING:
    from .slot import Slot


class JoinRequestStatus(str, Enum):
    """Join request status enumeration."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"


class JoinRequest(Base):
    """A traveler's request to attach an existing booking to an existing slot."""

    __tablename__ = "slot_join_requests"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign keys
    slot_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("slots.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Request details
    requester_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    slot_creator_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    guest_count: Mapped[int] = mapped_column(Integer, nullable=False)
    guest_details: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[JoinRequestStatus] = mapped_column(
        String(20),
        nullable=False,
        default=JoinRequestStatus.PENDING,
        index=True
    )
    response_message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    responded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("guest_count > 0", name="ck_join_request_guest_count_positive"),
        CheckConstraint("length(requester_id) > 0", name="ck_join_request_requester_not_empty"),
        # At most one pending request per slot and booking
        Index(
            "uq_join_request_pending_slot_booking",
            "slot_id",
            "booking_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
        Index("ix_join_requests_creator_status", "slot_creator_id", "status"),
    )

    # Relationships
    slot: Mapped["Slot"] = relationship("Slot", back_populates="join_requests")

    @property
    def is_pending(self) -> bool:
        return self.status == JoinRequestStatus.PENDING

    def __repr__(self) -> str:
        return (
            f"<JoinRequest(id={self.id}, slot_id={self.slot_id}, booking_id={self.booking_id}, "
            f"guest_count={self.guest_count}, status={self.status})>"
        )
