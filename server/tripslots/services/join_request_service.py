"""Join request workflow: pending requests resolved by the slot creator."""

import logging
from typing import Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import utcnow
from ..core.exceptions import (
    AlreadyInSlotError,
    DuplicatePendingRequestError,
    InvalidGuestDataError,
    NotAuthorizedError,
    NotFoundError,
    RequestAlreadyResolvedError,
    SlotClosedError,
    SlotFullError,
    SlotNotJoinableError,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking
from ..models.join_request import JoinRequest, JoinRequestStatus
from ..models.slot import Slot, SlotStatus
from ..schemas.common import GuestDetail
from ..schemas.events import DomainEvent, JoinRequestApproved, JoinRequestDeclined, JoinRequestSubmitted, SlotBecameFull
from ..schemas.join_request import JoinDecision
from .notifications import InMemoryNotificationDispatcher, NotificationDispatcher, publish
from .slot_registry import SlotRegistry

logger = logging.getLogger(__name__)

DEFAULT_APPROVAL_MESSAGE = "Request approved. Welcome to the slot!"
DEFAULT_DECLINE_REASON = "Request declined by slot creator"
CAPACITY_EXHAUSTED_REASON = "capacity exhausted"
SLOT_CLOSED_REASON = "slot closed"
ALREADY_IN_SLOT_REASON = "booking already in another slot"
GUEST_COUNT_CHANGED_REASON = "booking guest count changed"

# Admission failures that turn an approval into a decline
DECLINE_REASONS = {
    SlotFullError: CAPACITY_EXHAUSTED_REASON,
    SlotClosedError: SLOT_CLOSED_REASON,
    AlreadyInSlotError: ALREADY_IN_SLOT_REASON,
    InvalidGuestDataError: GUEST_COUNT_CHANGED_REASON,
}


def _status_value(status) -> str:
    return getattr(status, "value", status)


class JoinRequestService:
    """
    Service for the join request state machine.

    PENDING moves to exactly one of APPROVED, DECLINED or CANCELLED. Every
    transition re-reads the request inside the slot's critical section, so
    racing responses on one request leave a single terminal state.
    """

    def __init__(
        self,
        db: AsyncSession,
        dispatcher: Optional[NotificationDispatcher] = None,
        registry: Optional[SlotRegistry] = None,
    ):
        self.db = db
        self.dispatcher = dispatcher or InMemoryNotificationDispatcher()
        self.registry = registry or SlotRegistry(db)

    async def get_request(self, request_id: UUID, fresh: bool = False) -> Optional[JoinRequest]:
        stmt = select(JoinRequest).where(JoinRequest.id == request_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_request_or_raise(self, request_id: UUID, fresh: bool = False) -> JoinRequest:
        """
        Get join request by ID or raise NotFoundError.

        Raises:
            NotFoundError: If the join request does not exist
        """
        join_request = await self.get_request(request_id, fresh=fresh)
        if not join_request:
            raise NotFoundError(resource_type="join request", resource_id=str(request_id))
        return join_request

    async def find_pending(self, slot_id: UUID, booking_id: UUID) -> Optional[JoinRequest]:
        stmt = select(JoinRequest).where(
            JoinRequest.slot_id == slot_id,
            JoinRequest.booking_id == booking_id,
            JoinRequest.status == JoinRequestStatus.PENDING,
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def submit(
        self,
        slot_id: UUID,
        booking_id: UUID,
        requester_id: str,
        guest_details: Sequence[GuestDetail],
        message: str = "",
    ) -> JoinRequest:
        """
        File a pending request to join a slot with an existing booking.

        Raises:
            NotFoundError: If the slot or booking does not exist
            NotAuthorizedError: If the booking does not belong to the requester
            AlreadyInSlotError: If the booking already belongs to a slot
            InvalidGuestDataError: If the guest list does not match the booking's guest count
            SlotNotJoinableError: If the slot is full, closed or lacks seats for the guests
            DuplicatePendingRequestError: If a pending request for the slot and booking exists
        """
        guest_count = len(guest_details)
        if guest_count < 1:
            raise ValueError("A join request needs at least one guest")

        async with self.registry.critical_section(str(slot_id)):
            slot = await self.registry.reload_slot(slot_id)
            if not slot:
                raise NotFoundError(resource_type="slot", resource_id=str(slot_id))

            booking = await self.db.get(Booking, booking_id, populate_existing=True)
            if not booking:
                raise NotFoundError(resource_type="booking", resource_id=str(booking_id))

            if booking.user_id != requester_id:
                raise NotAuthorizedError("Only the booking owner can ask to join a slot with it", slot=slot)

            if booking.slot_id is not None:
                raise AlreadyInSlotError(str(booking_id), str(booking.slot_id), slot=slot)

            if booking.guest_count != guest_count:
                raise InvalidGuestDataError(
                    f"Booking has {booking.guest_count} guests but {guest_count} were listed",
                    slot=slot,
                )

            if slot.status in (SlotStatus.CLOSED, SlotStatus.FULL) or slot.available_capacity < guest_count:
                logger.warning(
                    "Join request rejected - slot not joinable",
                    extra={
                        "slot_id": str(slot_id),
                        "status": _status_value(slot.status),
                        "available_capacity": slot.available_capacity,
                        "guest_count": guest_count
                    }
                )
                raise SlotNotJoinableError(slot, guest_count)

            existing = await self.find_pending(slot_id, booking_id)
            if existing:
                raise DuplicatePendingRequestError(str(existing.id), slot)

            join_request = JoinRequest(
                id=uuid4(),
                slot_id=slot.id,
                booking_id=booking_id,
                requester_id=requester_id,
                slot_creator_id=slot.creator_id,
                guest_count=guest_count,
                guest_details=[guest.to_record() for guest in guest_details],
                message=message or "",
                status=JoinRequestStatus.PENDING,
                response_message="",
                created_at=utcnow(),
            )
            self.db.add(join_request)

        metrics_collector.record_join_request_transition(JoinRequestStatus.PENDING.value)
        logger.info(
            "Join request submitted",
            extra={
                "request_id": str(join_request.id),
                "slot_id": str(slot_id),
                "booking_id": str(booking_id),
                "requester_id": requester_id,
                "guest_count": guest_count
            }
        )

        await publish(
            self.dispatcher,
            JoinRequestSubmitted(
                slot_id=str(slot.id),
                request_id=str(join_request.id),
                creator_id=slot.creator_id,
                guest_count=guest_count,
            )
        )

        return join_request

    def _ensure_creator(self, slot: Slot, acting_user_id: str, action: str) -> None:
        if slot.creator_id != acting_user_id:
            logger.warning(
                "Join request response rejected - not the slot creator",
                extra={"slot_id": str(slot.id), "acting_user_id": acting_user_id, "action": action}
            )
            raise NotAuthorizedError(f"Only the slot creator can {action} join requests", slot=slot)

    def _ensure_pending(self, join_request: JoinRequest, slot: Optional[Slot]) -> None:
        if join_request.status != JoinRequestStatus.PENDING:
            raise RequestAlreadyResolvedError(str(join_request.id), _status_value(join_request.status), slot=slot)

    def _resolve(self, join_request: JoinRequest, status: JoinRequestStatus, message: str) -> None:
        join_request.status = status
        join_request.response_message = message
        join_request.responded_at = utcnow()

    async def approve(self, request_id: UUID, acting_user_id: str, message: Optional[str] = None) -> JoinRequest:
        """
        Approve a pending request, admitting its booking into the slot.

        Capacity is re-checked at approval time. If the slot filled up or was
        closed since submission, or the booking joined another slot or changed
        its guest count, the request is declined instead and returned normally
        with the reason in `response_message`.

        Raises:
            NotFoundError: If the request does not exist
            NotAuthorizedError: If the actor is not the slot creator
            RequestAlreadyResolvedError: If the request is no longer pending
        """
        join_request = await self.get_request_or_raise(request_id)
        events: list[DomainEvent] = []

        async with self.registry.lock_slot(join_request.slot_id) as slot:
            join_request = await self.get_request_or_raise(request_id, fresh=True)
            self._ensure_creator(slot, acting_user_id, "approve")
            self._ensure_pending(join_request, slot)

            try:
                await self.registry.admit(slot, join_request.booking_id, join_request.guest_count)
            except (SlotFullError, SlotClosedError, AlreadyInSlotError, InvalidGuestDataError) as e:
                reason = DECLINE_REASONS[type(e)]
                self._resolve(join_request, JoinRequestStatus.DECLINED, reason)
                events.append(
                    JoinRequestDeclined(
                        request_id=str(join_request.id),
                        requester_id=join_request.requester_id,
                        reason=reason,
                    )
                )
            else:
                self._resolve(join_request, JoinRequestStatus.APPROVED, message or DEFAULT_APPROVAL_MESSAGE)
                events.append(
                    JoinRequestApproved(
                        request_id=str(join_request.id),
                        requester_id=join_request.requester_id,
                        slot_id=str(slot.id),
                    )
                )
                if slot.status == SlotStatus.FULL:
                    events.append(
                        SlotBecameFull(
                            slot_id=str(slot.id),
                            member_booking_ids=[str(member.booking_id) for member in slot.members],
                        )
                    )

        status = _status_value(join_request.status)
        metrics_collector.record_join_request_transition(status)
        if join_request.status == JoinRequestStatus.APPROVED:
            metrics_collector.record_admission("admitted")
            metrics_collector.set_slot_occupancy(str(slot.id), slot.occupancy_rate)

        logger.info(
            "Join request approval processed",
            extra={
                "request_id": str(request_id),
                "slot_id": str(slot.id),
                "status": status,
                "response_message": join_request.response_message,
                "available_capacity": slot.available_capacity
            }
        )

        await publish(self.dispatcher, *events)
        return join_request

    async def decline(self, request_id: UUID, acting_user_id: str, reason: Optional[str] = None) -> JoinRequest:
        """
        Decline a pending request.

        Raises:
            NotFoundError: If the request does not exist
            NotAuthorizedError: If the actor is not the slot creator
            RequestAlreadyResolvedError: If the request is no longer pending
        """
        join_request = await self.get_request_or_raise(request_id)

        async with self.registry.critical_section(str(join_request.slot_id)):
            slot = await self.registry.reload_slot(join_request.slot_id)
            join_request = await self.get_request_or_raise(request_id, fresh=True)
            self._ensure_creator(slot, acting_user_id, "decline")
            self._ensure_pending(join_request, slot)
            self._resolve(join_request, JoinRequestStatus.DECLINED, reason or DEFAULT_DECLINE_REASON)

        metrics_collector.record_join_request_transition(JoinRequestStatus.DECLINED.value)
        logger.info(
            "Join request declined",
            extra={
                "request_id": str(request_id),
                "slot_id": str(join_request.slot_id),
                "reason": join_request.response_message
            }
        )

        await publish(
            self.dispatcher,
            JoinRequestDeclined(
                request_id=str(join_request.id),
                requester_id=join_request.requester_id,
                reason=join_request.response_message,
            )
        )
        return join_request

    async def respond(
        self,
        request_id: UUID,
        acting_user_id: str,
        decision: JoinDecision,
        message: Optional[str] = None,
    ) -> JoinRequest:
        """Apply the slot creator's decision; see `approve` and `decline`."""
        if decision == JoinDecision.APPROVE:
            return await self.approve(request_id, acting_user_id, message)
        return await self.decline(request_id, acting_user_id, message)

    async def cancel(self, request_id: UUID, acting_user_id: str) -> JoinRequest:
        """
        Withdraw a pending request. Only the requester may cancel.

        Raises:
            NotFoundError: If the request does not exist
            NotAuthorizedError: If the actor is not the requester
            RequestAlreadyResolvedError: If the request is no longer pending
        """
        join_request = await self.get_request_or_raise(request_id)

        async with self.registry.critical_section(str(join_request.slot_id)):
            slot = await self.registry.reload_slot(join_request.slot_id)
            join_request = await self.get_request_or_raise(request_id, fresh=True)
            if join_request.requester_id != acting_user_id:
                raise NotAuthorizedError("Only the requester can cancel a join request", slot=slot)
            self._ensure_pending(join_request, slot)
            self._resolve(join_request, JoinRequestStatus.CANCELLED, "Request cancelled by requester")

        metrics_collector.record_join_request_transition(JoinRequestStatus.CANCELLED.value)
        logger.info(
            "Join request cancelled",
            extra={"request_id": str(request_id), "slot_id": str(join_request.slot_id)}
        )
        return join_request

    async def list_pending_for_creator(self, creator_id: str, limit: int = 50) -> list[JoinRequest]:
        """Pending requests awaiting this creator, newest first."""
        stmt = (
            select(JoinRequest)
            .where(
                JoinRequest.slot_creator_id == creator_id,
                JoinRequest.status == JoinRequestStatus.PENDING,
            )
            .order_by(JoinRequest.created_at.desc(), JoinRequest.id)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
