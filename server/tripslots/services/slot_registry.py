"""Slot lifecycle and capacity bookkeeping."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from ..core.database import utcnow
from ..core.exceptions import (
    AlreadyInSlotError,
    CapacityExceededError,
    DuplicateSlotError,
    InvalidGuestDataError,
    InvariantViolationError,
    NotFoundError,
    SlotBusyError,
    SlotClosedError,
    SlotFullError,
)
from ..core.locks import SlotLockManager, advisory_lock, slot_locks
from ..core.observability import metrics_collector
from ..models.booking import Booking
from ..models.slot import Slot, SlotMember, SlotStatus

logger = logging.getLogger(__name__)


def natural_key(package_id: UUID, destination_id: UUID, trip_date: date) -> str:
    """Lock key shared by every slot of one package, destination and date."""
    return f"{package_id}:{destination_id}:{trip_date.isoformat()}"


def derive_status(slot: Slot) -> SlotStatus:
    """CLOSED is sticky; otherwise FULL exactly when no seat is left."""
    if slot.status == SlotStatus.CLOSED:
        return SlotStatus.CLOSED
    if slot.occupied_capacity >= slot.max_capacity:
        return SlotStatus.FULL
    return SlotStatus.AVAILABLE


def check_invariants(slot: Slot) -> None:
    """
    Verify the capacity invariants of an in-memory slot.

    Raises:
        InvariantViolationError: If occupancy exceeds capacity, the status
            disagrees with occupancy, or a booking appears twice
    """
    slot_id = str(slot.id) if slot.id else None
    occupied = slot.occupied_capacity

    if slot.max_capacity <= 0:
        raise InvariantViolationError(f"Slot capacity must be positive, got {slot.max_capacity}", slot_id)
    if occupied > slot.max_capacity:
        raise InvariantViolationError(
            f"Slot occupancy {occupied} exceeds capacity {slot.max_capacity}", slot_id
        )
    if slot.status != SlotStatus.CLOSED and (slot.status == SlotStatus.FULL) != (occupied == slot.max_capacity):
        raise InvariantViolationError(
            f"Slot status {slot.status} disagrees with occupancy {occupied}/{slot.max_capacity}", slot_id
        )
    if len(slot.booking_refs) != len(slot.members):
        raise InvariantViolationError("Slot lists the same booking more than once", slot_id)


def apply_admission(slot: Slot, booking_id: UUID, guest_count: int) -> SlotMember:
    """
    Add a booking to an in-memory slot and recompute its status.

    Raises:
        AlreadyInSlotError: If the booking is already a member
        SlotClosedError: If the slot is closed
        SlotFullError: If the guests do not fit
    """
    if guest_count <= 0:
        raise ValueError("guest_count must be positive")
    if booking_id in slot.booking_refs:
        raise AlreadyInSlotError(str(booking_id), str(slot.id), slot=slot)
    if slot.status == SlotStatus.CLOSED:
        raise SlotClosedError(slot)
    if slot.occupied_capacity + guest_count > slot.max_capacity:
        raise SlotFullError(slot, guest_count)

    member = SlotMember(booking_id=booking_id, guest_count=guest_count, joined_at=utcnow())
    slot.members.append(member)
    slot.status = derive_status(slot)
    return member


def apply_removal(slot: Slot, booking_id: UUID) -> SlotMember:
    """
    Drop a booking from an in-memory slot and recompute its status.

    Raises:
        NotFoundError: If the booking is not a member of the slot
    """
    for member in slot.members:
        if member.booking_id == booking_id:
            slot.members.remove(member)
            slot.status = derive_status(slot)
            return member
    raise NotFoundError(
        resource_type="slot member",
        resource_id=str(booking_id),
        detail=f"Booking {booking_id} is not a member of slot {slot.id}",
    )


class SlotRegistry:
    """
    Owns slot creation and every capacity mutation.

    Mutations run inside a per-slot critical section: the in-process lock,
    a PostgreSQL advisory lock on the same key, a fresh reload of the slot and
    its members, and the optimistic `version` check at flush time.
    """

    def __init__(self, db: AsyncSession, locks: Optional[SlotLockManager] = None):
        self.db = db
        self.locks = locks or slot_locks

    def _slot_query(self):
        return select(Slot).options(
            selectinload(Slot.members),
            selectinload(Slot.package),
        )

    async def get_slot_by_id(self, slot_id: UUID) -> Optional[Slot]:
        stmt = self._slot_query().where(Slot.id == slot_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_slot_by_id_or_raise(self, slot_id: UUID) -> Slot:
        """
        Get slot by ID or raise NotFoundError.

        Raises:
            NotFoundError: If the slot does not exist
        """
        slot = await self.get_slot_by_id(slot_id)
        if not slot:
            raise NotFoundError(resource_type="slot", resource_id=str(slot_id))
        return slot

    async def find_open_slot(self, package_id: UUID, destination_id: UUID, trip_date: date) -> Optional[Slot]:
        """Return the AVAILABLE slot for the natural key, if any."""
        stmt = (
            self._slot_query()
            .where(
                Slot.package_id == package_id,
                Slot.destination_id == destination_id,
                Slot.trip_date == trip_date,
                Slot.status == SlotStatus.AVAILABLE,
            )
            .order_by(Slot.created_at)
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def count_slots(self, package_id: UUID, destination_id: UUID, trip_date: date) -> int:
        stmt = select(func.count(Slot.id)).where(
            Slot.package_id == package_id,
            Slot.destination_id == destination_id,
            Slot.trip_date == trip_date,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def reload_slot(self, slot_id: UUID) -> Optional[Slot]:
        """Load the slot bypassing the session's identity map; use inside a critical section."""
        stmt = (
            self._slot_query()
            .where(Slot.id == slot_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_booking_or_raise(self, booking_id: UUID) -> Booking:
        stmt = select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def _commit(self, slot_key: str) -> None:
        try:
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning("Concurrent slot update detected", extra={"slot_key": slot_key})
            raise SlotBusyError(slot_key, detail="Slot changed concurrently, retry shortly") from e
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                "Slot write collided with a concurrent write",
                extra={"slot_key": slot_key, "error": str(e)}
            )
            raise SlotBusyError(slot_key, detail="Slot write collided with a concurrent write, retry shortly") from e

    @asynccontextmanager
    async def critical_section(self, key: str) -> AsyncIterator[None]:
        """
        Serialize the enclosed block against every other holder of `key`.

        The block's changes are committed on normal exit and rolled back on
        any exception.
        """
        async with self.locks.acquire(key):
            try:
                # Pending objects from the caller join the locked transaction
                await self.db.flush()
                await advisory_lock(self.db, key)
                yield
                await self._commit(key)
            except Exception:
                await self.db.rollback()
                raise

    @asynccontextmanager
    async def lock_slot(self, slot_id: UUID) -> AsyncIterator[Slot]:
        """
        Enter the slot's critical section and yield a freshly loaded slot.

        Invariants are checked and the optimistic version is bumped before
        the commit; a violated invariant aborts the whole transaction.

        Raises:
            NotFoundError: If the slot does not exist
            SlotBusyError: If the lock times out or a concurrent write won
            InvariantViolationError: If the block left the slot inconsistent
        """
        async with self.critical_section(str(slot_id)):
            slot = await self.reload_slot(slot_id)
            if not slot:
                raise NotFoundError(resource_type="slot", resource_id=str(slot_id))
            yield slot
            check_invariants(slot)
            slot.updated_at = utcnow()

    async def create_slot(
        self,
        package_id: UUID,
        destination_id: UUID,
        destination_name: str,
        trip_date: date,
        max_capacity: int,
        creator_id: str,
        seed_booking_id: UUID,
        seed_guest_count: int,
    ) -> Slot:
        """
        Open a slot for a natural key with the creator's booking as its first member.

        The duplicate check and the insert are serialized per natural key.

        Raises:
            DuplicateSlotError: If an open slot already exists for the key
            CapacityExceededError: If the seed booking does not fit
            NotFoundError: If the seed booking does not exist
        """
        key = natural_key(package_id, destination_id, trip_date)

        try:
            async with self.critical_section(key):
                existing = await self.find_open_slot(package_id, destination_id, trip_date)
                if existing:
                    logger.warning(
                        "Slot creation failed - open slot exists",
                        extra={"slot_key": key, "existing_slot_id": str(existing.id)}
                    )
                    raise DuplicateSlotError(existing)

                if seed_guest_count > max_capacity:
                    raise CapacityExceededError(seed_guest_count, max_capacity)

                booking = await self._get_booking_or_raise(seed_booking_id)
                sequence = await self.count_slots(package_id, destination_id, trip_date) + 1

                slot = Slot(
                    id=uuid4(),
                    package_id=package_id,
                    destination_id=destination_id,
                    destination_name=destination_name,
                    trip_date=trip_date,
                    slot_name=f"Slot {sequence} - {destination_name}",
                    max_capacity=max_capacity,
                    status=SlotStatus.AVAILABLE,
                    creator_id=creator_id,
                    creator_booking_id=seed_booking_id,
                    members=[],
                )
                apply_admission(slot, seed_booking_id, seed_guest_count)
                check_invariants(slot)
                self.db.add(slot)
                # Slot row must exist before the booking points at it
                await self.db.flush()

                booking.slot_id = slot.id
                booking.destination_id = destination_id

        except IntegrityError as e:
            logger.error(
                "Slot creation failed - integrity error",
                extra={"slot_key": key, "error": str(e)}
            )
            raise SlotBusyError(key, detail="Slot creation collided with a concurrent write, retry shortly") from e

        metrics_collector.record_slot_created()
        metrics_collector.set_slot_occupancy(str(slot.id), slot.occupancy_rate)

        logger.info(
            "Slot created successfully",
            extra={
                "slot_id": str(slot.id),
                "slot_name": slot.slot_name,
                "package_id": str(package_id),
                "trip_date": trip_date.isoformat(),
                "max_capacity": max_capacity,
                "available_capacity": slot.available_capacity,
                "status": slot.status
            }
        )

        return slot

    async def admit(self, slot: Slot, booking_id: UUID, guest_count: int) -> Slot:
        """
        Admit a booking into a slot already locked with `lock_slot`.

        Raises:
            NotFoundError: If the booking does not exist
            AlreadyInSlotError: If the booking already belongs to a slot
            InvalidGuestDataError: If `guest_count` differs from the booking's own guest count
            SlotClosedError: If the slot is closed
            SlotFullError: If the guests do not fit
        """
        booking = await self._get_booking_or_raise(booking_id)
        if booking.slot_id is not None and booking.slot_id != slot.id:
            raise AlreadyInSlotError(str(booking_id), str(booking.slot_id), slot=slot)
        if guest_count != booking.guest_count:
            raise InvalidGuestDataError(
                f"Booking {booking_id} has {booking.guest_count} guests, {guest_count} requested",
                slot=slot,
            )

        try:
            apply_admission(slot, booking_id, guest_count)
        except SlotClosedError:
            metrics_collector.record_admission("closed")
            raise
        except SlotFullError:
            metrics_collector.record_admission("full")
            raise

        booking.slot_id = slot.id
        booking.destination_id = slot.destination_id
        return slot

    async def admit_booking(self, slot_id: UUID, booking_id: UUID, guest_count: int) -> Slot:
        """
        Atomically admit a booking if the slot is open and the guests fit.

        Raises:
            NotFoundError: If the slot or booking does not exist
            AlreadyInSlotError: If the booking already belongs to a slot
            InvalidGuestDataError: If `guest_count` differs from the booking's own guest count
            SlotClosedError: If the slot is closed
            SlotFullError: If the guests do not fit
            SlotBusyError: If the slot's critical section is contended
        """
        try:
            async with self.lock_slot(slot_id) as slot:
                await self.admit(slot, booking_id, guest_count)
        except (SlotClosedError, SlotFullError) as e:
            logger.warning(
                "Booking admission rejected",
                extra={
                    "slot_id": str(slot_id),
                    "booking_id": str(booking_id),
                    "guest_count": guest_count,
                    "code": e.code
                }
            )
            raise
        except SlotBusyError:
            metrics_collector.record_admission("busy")
            raise

        metrics_collector.record_admission("admitted")
        metrics_collector.set_slot_occupancy(str(slot.id), slot.occupancy_rate)

        logger.info(
            "Booking admitted to slot",
            extra={
                "slot_id": str(slot_id),
                "booking_id": str(booking_id),
                "guest_count": guest_count,
                "available_capacity": slot.available_capacity,
                "status": slot.status
            }
        )

        return slot

    async def remove_booking(self, slot_id: UUID, booking_id: UUID) -> Slot:
        """
        Remove a booking from a slot, freeing its seats.

        A FULL slot becomes AVAILABLE again; a CLOSED slot stays closed.

        Raises:
            NotFoundError: If the slot does not exist or the booking is not a member
        """
        async with self.lock_slot(slot_id) as slot:
            apply_removal(slot, booking_id)
            booking = await self.db.get(Booking, booking_id)
            if booking is not None and booking.slot_id == slot.id:
                booking.slot_id = None

        metrics_collector.set_slot_occupancy(str(slot.id), slot.occupancy_rate)

        logger.info(
            "Booking removed from slot",
            extra={
                "slot_id": str(slot_id),
                "booking_id": str(booking_id),
                "available_capacity": slot.available_capacity,
                "status": slot.status
            }
        )

        return slot

    async def close_slot(self, slot_id: UUID) -> Slot:
        """
        Close a slot to further admissions. Closing a closed slot is a no-op.

        Raises:
            NotFoundError: If the slot does not exist
        """
        async with self.lock_slot(slot_id) as slot:
            previous_status = slot.status
            slot.status = SlotStatus.CLOSED

        logger.info(
            "Slot closed",
            extra={
                "slot_id": str(slot_id),
                "previous_status": previous_status,
                "occupied_capacity": slot.occupied_capacity
            }
        )

        return slot
