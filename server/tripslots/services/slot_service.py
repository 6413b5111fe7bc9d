"""Slot service for slot creation and membership operations."""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import NotAuthorizedError, NotFoundError
from ..models.booking import Booking, PaymentStatus
from ..models.package import Package
from ..models.slot import Slot, SlotStatus
from ..schemas.events import DomainEvent, SlotBecameFull, SlotCreated
from ..schemas.slot import CreateSlotRequest, FindOpenSlotRequest
from .notifications import InMemoryNotificationDispatcher, NotificationDispatcher, publish
from .pricing_service import PricingService, compute_amount, price_table_for
from .slot_registry import SlotRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreatedSlot:
    """Result of a traveler creating a slot."""

    slot: Slot
    booking: Booking
    package: Package


class SlotService:
    """Service for slot-related operations."""

    def __init__(
        self,
        db: AsyncSession,
        dispatcher: Optional[NotificationDispatcher] = None,
        registry: Optional[SlotRegistry] = None,
    ):
        self.db = db
        self.dispatcher = dispatcher or InMemoryNotificationDispatcher()
        self.registry = registry or SlotRegistry(db)
        self.pricing_service = PricingService(db)

    async def create_slot(self, request: CreateSlotRequest, creator_id: str) -> CreatedSlot:
        """
        Create a slot for a traveler together with their seed booking.

        The package is looked up, the guests are priced, a pending seed
        booking is written and the registry opens the slot with that booking
        as its first member, all in one transaction.

        Args:
            request: Slot creation request
            creator_id: Acting user from the bearer token

        Returns:
            The slot, the seed booking and the package

        Raises:
            NotFoundError: If the package does not exist
            InvalidGuestDataError: If a guest has a negative age
            DuplicateSlotError: If an open slot exists for the same package, destination and date
            CapacityExceededError: If the guests exceed the slot capacity
        """
        package = await self.pricing_service.get_package_or_raise(request.package_id)
        amount = compute_amount(request.guest_details, price_table_for(package))
        guest_count = len(request.guest_details)
        max_capacity = request.max_capacity or settings.default_slot_capacity

        booking = Booking(
            id=uuid4(),
            package_id=package.id,
            user_id=creator_id,
            destination_id=request.destination_id,
            trip_date=request.trip_date,
            guest_count=guest_count,
            guest_details=[guest.to_record() for guest in request.guest_details],
            base_amount=amount,
            final_amount=amount,
            payment_status=PaymentStatus.PENDING,
        )
        self.db.add(booking)

        slot = await self.registry.create_slot(
            package_id=package.id,
            destination_id=request.destination_id,
            destination_name=request.destination_name,
            trip_date=request.trip_date,
            max_capacity=max_capacity,
            creator_id=creator_id,
            seed_booking_id=booking.id,
            seed_guest_count=guest_count,
        )

        events: list[DomainEvent] = [
            SlotCreated(
                slot_id=str(slot.id),
                package_id=str(package.id),
                destination_name=slot.destination_name,
                trip_date=slot.trip_date,
                available_capacity=slot.available_capacity,
            )
        ]
        # The seed party alone can fill the slot
        if slot.status == SlotStatus.FULL:
            events.append(
                SlotBecameFull(
                    slot_id=str(slot.id),
                    member_booking_ids=[str(member.booking_id) for member in slot.members],
                )
            )
        await publish(self.dispatcher, *events)

        return CreatedSlot(slot=slot, booking=booking, package=package)

    async def get_slot(self, slot_id: UUID) -> Slot:
        """
        Get slot details.

        Raises:
            NotFoundError: If the slot does not exist
        """
        return await self.registry.get_slot_by_id_or_raise(slot_id)

    async def find_open_slot(self, request: FindOpenSlotRequest) -> Optional[Slot]:
        return await self.registry.find_open_slot(
            request.package_id,
            request.destination_id,
            request.trip_date
        )

    async def remove_booking(self, slot_id: UUID, booking_id: UUID, actor_id: str, is_admin: bool = False) -> Slot:
        """
        Remove a booking from a slot on behalf of the booking owner, the slot creator or an admin.

        Raises:
            NotFoundError: If the slot or the membership does not exist
            NotAuthorizedError: If the actor may not remove this booking
        """
        slot = await self.registry.get_slot_by_id_or_raise(slot_id)
        booking = await self.db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))

        if not is_admin and actor_id not in (slot.creator_id, booking.user_id):
            logger.warning(
                "Booking removal rejected - not authorized",
                extra={
                    "slot_id": str(slot_id),
                    "booking_id": str(booking_id),
                    "actor_id": actor_id
                }
            )
            raise NotAuthorizedError(
                "Only the booking owner, the slot creator or an admin can remove a booking", slot=slot
            )

        return await self.registry.remove_booking(slot_id, booking_id)

    async def close_slot(self, slot_id: UUID, actor_id: str, is_admin: bool = False) -> Slot:
        """
        Close a slot to further admissions. Admin only.

        Raises:
            NotFoundError: If the slot does not exist
            NotAuthorizedError: If the actor is not an admin
        """
        if not is_admin:
            logger.warning(
                "Slot close rejected - not an admin",
                extra={"slot_id": str(slot_id), "actor_id": actor_id}
            )
            raise NotAuthorizedError("Only an admin can close a slot")

        return await self.registry.close_slot(slot_id)
