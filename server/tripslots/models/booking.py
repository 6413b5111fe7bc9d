"""Booking model definition."""

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, Date, ForeignKey, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, utcnow

if TYPE_CHECKING:
    from .package import Package


class PaymentStatus(str, Enum):
    """Payment status enumeration, owned by the payment collaborator."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Booking(Base):
    """
    One traveler's reservation against a package.

    The slot engine only reads `guest_count` and writes `slot_id`; everything
    else is owned by the booking and payment collaborators.
    """

    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign keys
    package_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("packages.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    slot_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("slots.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Booking details
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    destination_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    trip_date: Mapped[date] = mapped_column(Date, nullable=False)
    guest_count: Mapped[int] = mapped_column(Integer, nullable=False)
    guest_details: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    base_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    final_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payment_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("guest_count > 0", name="ck_booking_guest_count_positive"),
        CheckConstraint("length(user_id) > 0", name="ck_booking_user_id_not_empty"),
        CheckConstraint("final_amount >= 0", name="ck_booking_final_amount_non_negative"),
    )

    # Relationships
    package: Mapped["Package"] = relationship("Package")

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, user_id='{self.user_id}', "
            f"guest_count={self.guest_count}, slot_id={self.slot_id})>"
        )
