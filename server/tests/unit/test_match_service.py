"""Unit tests for match service queries."""

from datetime import date, timedelta
from uuid import uuid4

import pytest

from tripslots.core.config import settings
from tripslots.core.exceptions import NotFoundError
from tripslots.schemas.common import DateRange
from tripslots.schemas.match import MatchQuery
from tripslots.services.match_service import MatchService
from tripslots.services.slot_registry import SlotRegistry


def _in_days(days: int) -> date:
    return date.today() + timedelta(days=days)


@pytest.mark.asyncio
async def test_find_matches_ranks_open_slots(test_session, package, make_slot):
    """Closed slots never surface and the best fit comes first."""
    near = await make_slot(test_session, package, trip_date=_in_days(20), max_capacity=6)
    far = await make_slot(test_session, package, trip_date=_in_days(45), max_capacity=6)
    closed = await make_slot(test_session, package, trip_date=_in_days(21), max_capacity=6)
    await SlotRegistry(test_session).close_slot(closed.slot.id)

    ranked = await MatchService(test_session).find_matches(
        MatchQuery(
            destination_name="goa",
            preferred_date_range=DateRange(start=_in_days(20)),
            budget=1000,
        )
    )

    assert [candidate.slot.id for candidate in ranked] == [near.slot.id, far.slot.id]
    assert ranked[0].score > ranked[1].score
    assert 0 < ranked[0].match_percentage <= 100


@pytest.mark.asyncio
async def test_find_matches_respects_min_available(test_session, package, make_slot):
    await make_slot(test_session, package, ages=(30, 30), max_capacity=3)

    ranked = await MatchService(test_session).find_matches(MatchQuery(min_available=2))

    assert ranked == []


@pytest.mark.asyncio
async def test_find_matches_limit_is_capped(test_session, package, make_slot, monkeypatch):
    """Requested limits above the configured maximum are clamped."""
    for offset in range(3):
        await make_slot(test_session, package, trip_date=_in_days(10 + offset))
    monkeypatch.setattr(settings, "match_max_limit", 2)

    service = MatchService(test_session)
    ranked = await service.find_matches(MatchQuery(limit=10))

    assert len(ranked) == 2
    assert service.resolve_limit(None) == 2


@pytest.mark.asyncio
async def test_find_similar_filters_alternatives(test_session, package, make_package, make_slot):
    """Alternatives share destination and category, sit within a month and price band."""
    reference = await make_slot(test_session, package, trip_date=_in_days(30))
    close_date = await make_slot(test_session, package, trip_date=_in_days(38))
    further_date = await make_slot(test_session, package, trip_date=_in_days(55))

    pricey = await make_package(test_session, title="Goa Luxe", price_adult=2000)
    trekking = await make_package(test_session, title="Goa Treks", category="trekking", package_type="private")
    await make_slot(test_session, pricey, trip_date=_in_days(31))
    await make_slot(test_session, trekking, trip_date=_in_days(32))
    await make_slot(test_session, package, trip_date=_in_days(33), destination_id=uuid4())
    await make_slot(test_session, package, trip_date=_in_days(80))

    ranked = await MatchService(test_session).find_similar(reference.slot.id)

    assert [candidate.slot.id for candidate in ranked] == [close_date.slot.id, further_date.slot.id]


@pytest.mark.asyncio
async def test_find_similar_unknown_slot(test_session):
    with pytest.raises(NotFoundError):
        await MatchService(test_session).find_similar(uuid4())
