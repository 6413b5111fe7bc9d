"""Unit tests for slot service."""

from datetime import date, timedelta
from uuid import uuid4

import pytest

from tripslots.core.config import settings
from tripslots.core.exceptions import InvalidGuestDataError, NotAuthorizedError, NotFoundError
from tripslots.models import SlotStatus
from tripslots.schemas.common import GuestDetail
from tripslots.schemas.slot import CreateSlotRequest, FindOpenSlotRequest
from tripslots.services.slot_registry import SlotRegistry
from tripslots.services.slot_service import SlotService


def _request(package_id, **overrides) -> CreateSlotRequest:
    values = {
        "package_id": package_id,
        "destination_id": uuid4(),
        "destination_name": "Manali",
        "trip_date": date.today() + timedelta(days=30),
        "guest_details": [GuestDetail(age=28, name="Asha")],
    }
    values.update(overrides)
    return CreateSlotRequest(**values)


@pytest.mark.asyncio
async def test_create_slot_uses_default_capacity(test_session, package):
    """Without max_capacity the configured default applies."""
    service = SlotService(test_session)

    created = await service.create_slot(_request(package.id), creator_id="creator-1")

    assert created.slot.max_capacity == settings.default_slot_capacity
    assert created.slot.creator_id == "creator-1"
    assert created.booking.user_id == "creator-1"
    assert created.booking.guest_details == [{"age": 28, "name": "Asha"}]
    assert created.booking.payment_status == "pending"
    assert created.package.id == package.id


@pytest.mark.asyncio
async def test_create_slot_unknown_package(test_session):
    service = SlotService(test_session)

    with pytest.raises(NotFoundError) as exc_info:
        await service.create_slot(_request(uuid4()), creator_id="creator-1")

    assert exc_info.value.problem_details["resource_type"] == "package"


@pytest.mark.asyncio
async def test_create_slot_negative_age(test_session, package):
    """Invalid guest ages are rejected before anything is written."""
    service = SlotService(test_session)

    with pytest.raises(InvalidGuestDataError):
        await service.create_slot(
            _request(package.id, guest_details=[GuestDetail(age=-3)]),
            creator_id="creator-1"
        )


@pytest.mark.asyncio
async def test_get_slot(test_session, package, make_slot):
    created = await make_slot(test_session, package)

    slot = await SlotService(test_session).get_slot(created.slot.id)

    assert slot.id == created.slot.id
    assert slot.occupied_capacity == 1


@pytest.mark.asyncio
async def test_get_slot_not_found(test_session):
    with pytest.raises(NotFoundError):
        await SlotService(test_session).get_slot(uuid4())


@pytest.mark.asyncio
async def test_find_open_slot(test_session, package, make_slot):
    created = await make_slot(test_session, package)
    slot = created.slot
    service = SlotService(test_session)

    found = await service.find_open_slot(
        FindOpenSlotRequest(package_id=slot.package_id, destination_id=slot.destination_id, trip_date=slot.trip_date)
    )
    missing = await service.find_open_slot(
        FindOpenSlotRequest(
            package_id=slot.package_id,
            destination_id=slot.destination_id,
            trip_date=slot.trip_date + timedelta(days=1)
        )
    )

    assert found.id == slot.id
    assert missing is None


@pytest.mark.asyncio
async def test_remove_booking_by_owner(test_session, package, make_slot, make_booking):
    """The booking owner may take their own booking out of a slot."""
    created = await make_slot(test_session, package)
    booking = await make_booking(test_session, package, "traveler-2")
    await SlotRegistry(test_session).admit_booking(created.slot.id, booking.id, 1)

    slot = await SlotService(test_session).remove_booking(created.slot.id, booking.id, actor_id="traveler-2")

    assert slot.occupied_capacity == 1


@pytest.mark.asyncio
async def test_remove_booking_by_creator(test_session, package, make_slot, make_booking):
    created = await make_slot(test_session, package)
    booking = await make_booking(test_session, package, "traveler-2")
    await SlotRegistry(test_session).admit_booking(created.slot.id, booking.id, 1)

    slot = await SlotService(test_session).remove_booking(created.slot.id, booking.id, actor_id="creator-1")

    assert booking.id not in slot.booking_refs


@pytest.mark.asyncio
async def test_remove_booking_by_stranger_rejected(test_session, package, make_slot, make_booking):
    """Anyone else needs the admin role."""
    created = await make_slot(test_session, package)
    booking = await make_booking(test_session, package, "traveler-2")
    await SlotRegistry(test_session).admit_booking(created.slot.id, booking.id, 1)
    service = SlotService(test_session)

    with pytest.raises(NotAuthorizedError):
        await service.remove_booking(created.slot.id, booking.id, actor_id="someone-else")

    slot = await service.remove_booking(created.slot.id, booking.id, actor_id="someone-else", is_admin=True)
    assert slot.occupied_capacity == 1


@pytest.mark.asyncio
async def test_close_slot_requires_admin(test_session, package, make_slot):
    created = await make_slot(test_session, package)
    service = SlotService(test_session)

    with pytest.raises(NotAuthorizedError):
        await service.close_slot(created.slot.id, actor_id="creator-1")

    slot = await service.close_slot(created.slot.id, actor_id="ops-1", is_admin=True)
    assert slot.status == SlotStatus.CLOSED
