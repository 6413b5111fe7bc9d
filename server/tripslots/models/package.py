"""Package model definition."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, utcnow

if TYPE_CHECKING:
    from .slot import Slot


class Package(Base):
    """Tour product a slot is built on. Read-only to the slot engine."""

    __tablename__ = "packages"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Package information
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    duration: Mapped[str | None] = mapped_column(String(64), nullable=True)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    package_type: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    features: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Price table by age band (stored as minor units)
    price_adult: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price_child: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price_infant: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("price_adult >= 0", name="ck_package_price_adult_non_negative"),
        CheckConstraint("price_child >= 0", name="ck_package_price_child_non_negative"),
        CheckConstraint("price_infant >= 0", name="ck_package_price_infant_non_negative"),
    )

    # Relationships
    slots: Mapped[list["Slot"]] = relationship("Slot", back_populates="package")

    def __repr__(self) -> str:
        return f"<Package(id={self.id}, title='{self.title}', price_adult={self.price_adult})>"
