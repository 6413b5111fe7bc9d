"""Concurrency tests for slot admissions and join request approvals."""

import asyncio

import pytest

from tripslots.core.exceptions import SlotFullError
from tripslots.models import JoinRequestStatus, SlotStatus
from tripslots.schemas.common import GuestDetail
from tripslots.services.join_request_service import CAPACITY_EXHAUSTED_REASON, JoinRequestService
from tripslots.services.slot_registry import SlotRegistry


@pytest.mark.asyncio
async def test_concurrent_admissions_no_overbooking(session_factory, make_package, make_booking, make_slot):
    """k free seats and k+1 concurrent single-guest admissions: exactly one is refused."""
    free_seats = 5

    async with session_factory() as session:
        package = await make_package(session)
        created = await make_slot(session, package, max_capacity=free_seats + 1)
        slot_id = created.slot.id
        booking_ids = [
            (await make_booking(session, package, f"traveler-{index}")).id
            for index in range(free_seats + 1)
        ]

    async def admit(booking_id):
        # Each task is a separate request with its own session and connection
        async with session_factory() as session:
            await SlotRegistry(session).admit_booking(slot_id, booking_id, 1)

    results = await asyncio.gather(*(admit(booking_id) for booking_id in booking_ids), return_exceptions=True)

    failures = [result for result in results if isinstance(result, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], SlotFullError)

    async with session_factory() as session:
        slot = await SlotRegistry(session).get_slot_by_id(slot_id)
        assert slot.occupied_capacity == free_seats + 1
        assert slot.available_capacity == 0
        assert slot.status == SlotStatus.FULL
        assert len(slot.members) == free_seats + 1


@pytest.mark.asyncio
async def test_concurrent_multi_guest_admissions(session_factory, make_package, make_booking, make_slot):
    """Mixed party sizes never push occupancy past capacity."""
    async with session_factory() as session:
        package = await make_package(session)
        created = await make_slot(session, package, max_capacity=10)
        slot_id = created.slot.id
        parties = [3, 2, 4, 1, 3, 2]
        bookings = [
            ((await make_booking(session, package, f"traveler-{index}", guest_count=size)).id, size)
            for index, size in enumerate(parties)
        ]

    async def admit(booking_id, size):
        async with session_factory() as session:
            await SlotRegistry(session).admit_booking(slot_id, booking_id, size)
            return size

    results = await asyncio.gather(*(admit(*booking) for booking in bookings), return_exceptions=True)

    admitted = sum(result for result in results if isinstance(result, int))
    assert all(isinstance(result, (int, SlotFullError)) for result in results)

    async with session_factory() as session:
        slot = await SlotRegistry(session).get_slot_by_id(slot_id)
        assert slot.occupied_capacity == 1 + admitted
        assert slot.occupied_capacity <= slot.max_capacity


@pytest.mark.asyncio
async def test_concurrent_approvals_for_last_seats(session_factory, make_package, make_booking, make_slot):
    """Racing approvals: the requests that fit are approved, the others are declined."""
    async with session_factory() as session:
        package = await make_package(session)
        created = await make_slot(session, package, ages=(30, 30), max_capacity=6)
        slot_id = created.slot.id

        service = JoinRequestService(session)
        request_ids = []
        for index in range(4):
            booking = await make_booking(session, package, f"traveler-{index}", guest_count=2)
            request = await service.submit(
                slot_id, booking.id, f"traveler-{index}", [GuestDetail(age=25), GuestDetail(age=26)]
            )
            request_ids.append(request.id)

    async def approve(request_id):
        async with session_factory() as session:
            return await JoinRequestService(session).approve(request_id, "creator-1")

    results = await asyncio.gather(*(approve(request_id) for request_id in request_ids))

    statuses = [result.status for result in results]
    assert statuses.count(JoinRequestStatus.APPROVED) == 2
    assert statuses.count(JoinRequestStatus.DECLINED) == 2
    assert all(
        result.response_message == CAPACITY_EXHAUSTED_REASON
        for result in results
        if result.status == JoinRequestStatus.DECLINED
    )

    async with session_factory() as session:
        slot = await SlotRegistry(session).get_slot_by_id(slot_id)
        assert slot.occupied_capacity == 6
        assert slot.status == SlotStatus.FULL


@pytest.mark.asyncio
async def test_concurrent_responses_to_one_request(session_factory, make_package, make_booking, make_slot):
    """Approve and decline racing on one request leave exactly one terminal state."""
    async with session_factory() as session:
        package = await make_package(session)
        created = await make_slot(session, package, max_capacity=4)
        slot_id = created.slot.id
        booking = await make_booking(session, package, "traveler-2")
        request = await JoinRequestService(session).submit(slot_id, booking.id, "traveler-2", [GuestDetail(age=40)])
        request_id = request.id

    async def approve():
        async with session_factory() as session:
            return await JoinRequestService(session).approve(request_id, "creator-1")

    async def decline():
        async with session_factory() as session:
            return await JoinRequestService(session).decline(request_id, "creator-1")

    results = await asyncio.gather(approve(), decline(), return_exceptions=True)

    winners = [result for result in results if not isinstance(result, Exception)]
    losers = [result for result in results if isinstance(result, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert losers[0].code == "REQUEST_ALREADY_RESOLVED"

    async with session_factory() as session:
        stored = await JoinRequestService(session).get_request_or_raise(request_id)
        assert stored.status == winners[0].status
        slot = await SlotRegistry(session).get_slot_by_id(slot_id)
        expected = 2 if stored.status == JoinRequestStatus.APPROVED else 1
        assert slot.occupied_capacity == expected
