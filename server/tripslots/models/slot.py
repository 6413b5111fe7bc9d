"""Slot and slot membership model definitions."""

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, utcnow

if TYPE_CHECKING:
    from .join_request import JoinRequest
    from .package import Package


class SlotStatus(str, Enum):
    """Slot status enumeration."""
    AVAILABLE = "AVAILABLE"
    FULL = "FULL"
    CLOSED = "CLOSED"


class Slot(Base):
    """
    A capacity-bounded group instance of a package at a destination on one date.

    Occupancy is the sum of the member bookings' guest counts and is always
    derived from `members`; there is no cached counter.
    """

    __tablename__ = "slots"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Natural key: package + destination + trip date
    package_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("packages.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    destination_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    trip_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Slot details
    destination_name: Mapped[str] = mapped_column(String(255), nullable=False)
    slot_name: Mapped[str] = mapped_column(String(300), nullable=False)
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[SlotStatus] = mapped_column(
        String(20),
        nullable=False,
        default=SlotStatus.AVAILABLE,
        index=True
    )
    creator_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    creator_booking_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)

    # Optimistic concurrency counter, bumped on every slot row update
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("max_capacity > 0", name="ck_slot_max_capacity_positive"),
        CheckConstraint("length(creator_id) > 0", name="ck_slot_creator_id_not_empty"),
        Index("ix_slots_natural_key", "package_id", "destination_id", "trip_date"),
        Index("ix_slots_status_trip_date", "status", "trip_date"),
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    package: Mapped["Package"] = relationship("Package", back_populates="slots")
    members: Mapped[list["SlotMember"]] = relationship(
        "SlotMember",
        back_populates="slot",
        cascade="all, delete-orphan",
        order_by="SlotMember.joined_at"
    )
    join_requests: Mapped[list["JoinRequest"]] = relationship(
        "JoinRequest",
        back_populates="slot",
        cascade="all, delete-orphan"
    )

    @property
    def booking_refs(self) -> set[UUID]:
        """Booking ids admitted into this slot."""
        return {member.booking_id for member in self.members}

    @property
    def occupied_capacity(self) -> int:
        return sum(member.guest_count for member in self.members)

    @property
    def available_capacity(self) -> int:
        return self.max_capacity - self.occupied_capacity

    @property
    def occupancy_rate(self) -> float:
        return self.occupied_capacity / self.max_capacity

    def __repr__(self) -> str:
        return (
            f"<Slot(id={self.id}, package_id={self.package_id}, trip_date={self.trip_date}, "
            f"capacity={self.occupied_capacity}/{self.max_capacity}, status={self.status})>"
        )


class SlotMember(Base):
    """Admission of one booking into a slot."""

    __tablename__ = "slot_members"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    slot_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("slots.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    # A booking can sit in at most one slot
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )
    guest_count: Mapped[int] = mapped_column(Integer, nullable=False)

    joined_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("guest_count > 0", name="ck_slot_member_guest_count_positive"),
    )

    # Relationships
    slot: Mapped["Slot"] = relationship("Slot", back_populates="members")

    def __repr__(self) -> str:
        return (
            f"<SlotMember(slot_id={self.slot_id}, booking_id={self.booking_id}, "
            f"guest_count={self.guest_count})>"
        )
