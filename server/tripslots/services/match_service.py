"""Match service loading candidate slots and ranking them."""

import logging
from datetime import timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.config import settings
from ..core.database import utcnow
from ..core.observability import metrics_collector
from ..models.package import Package
from ..models.slot import Slot, SlotStatus
from ..schemas.common import DateRange
from ..schemas.match import MatchQuery
from .match_engine import MatchCandidate, MatchEngine, date_window
from .slot_registry import SlotRegistry

logger = logging.getLogger(__name__)

SIMILAR_DATE_SPREAD = timedelta(days=30)
SIMILAR_PRICE_SPREAD = 0.2


class MatchService:
    """Service for slot recommendations."""

    def __init__(self, db: AsyncSession, engine: Optional[MatchEngine] = None):
        self.db = db
        self.engine = engine or MatchEngine()
        self.registry = SlotRegistry(db)

    def resolve_limit(self, requested: Optional[int]) -> int:
        """Requested limit, defaulted and capped by configuration."""
        return min(requested or settings.match_default_limit, settings.match_max_limit)

    async def find_matches(self, query: MatchQuery) -> list[MatchCandidate]:
        """
        Rank open slots for a solo traveler.

        Candidates are read in one snapshot without locks; the engine does
        the final filtering and ordering.
        """
        now = utcnow()
        start, end = date_window(query, now.date())

        stmt = (
            select(Slot)
            .options(selectinload(Slot.members), selectinload(Slot.package))
            .where(Slot.status != SlotStatus.CLOSED, Slot.trip_date >= start)
        )
        if end is not None:
            stmt = stmt.where(Slot.trip_date <= end)

        result = await self.db.execute(stmt)
        candidates = result.scalars().all()

        limit = self.resolve_limit(query.limit)
        ranked = self.engine.rank(candidates, query, now=now)[:limit]

        metrics_collector.record_match_query("search")
        logger.info(
            "Slot match search completed",
            extra={
                "candidates": len(candidates),
                "returned": len(ranked),
                "limit": limit,
                "top_score": ranked[0].score if ranked else None
            }
        )

        return ranked

    async def find_similar(self, slot_id: UUID, limit: int = 5) -> list[MatchCandidate]:
        """
        Alternatives to a slot: open slots at the same destination within a
        month either side, priced within 20% and sharing category or type.

        Raises:
            NotFoundError: If the reference slot does not exist
        """
        reference = await self.registry.get_slot_by_id_or_raise(slot_id)
        package = reference.package
        now = utcnow()

        low = reference.trip_date - SIMILAR_DATE_SPREAD
        high = reference.trip_date + SIMILAR_DATE_SPREAD
        price = package.price_adult

        stmt = (
            select(Slot)
            .join(Slot.package)
            .options(selectinload(Slot.members), selectinload(Slot.package))
            .where(
                Slot.id != reference.id,
                Slot.status == SlotStatus.AVAILABLE,
                Slot.destination_id == reference.destination_id,
                Slot.trip_date >= max(low, now.date()),
                Slot.trip_date <= high,
                Package.price_adult >= price * (1 - SIMILAR_PRICE_SPREAD),
                Package.price_adult <= price * (1 + SIMILAR_PRICE_SPREAD),
            )
        )
        shared = []
        if package.category:
            shared.append(Package.category == package.category)
        if package.package_type:
            shared.append(Package.package_type == package.package_type)
        if shared:
            stmt = stmt.where(or_(*shared))

        result = await self.db.execute(stmt)
        candidates = result.scalars().all()

        # Date points measure closeness to the reference trip date
        prefs = MatchQuery(
            destination_id=reference.destination_id,
            preferred_date_range=DateRange(start=reference.trip_date, end=high),
            budget=price or None,
            category=package.category,
            package_type=package.package_type,
        )
        ranked = self.engine.rank(candidates, prefs, now=now, apply_window=False)[:limit]

        metrics_collector.record_match_query("similar")
        logger.info(
            "Similar slot search completed",
            extra={
                "slot_id": str(slot_id),
                "candidates": len(candidates),
                "returned": len(ranked)
            }
        )

        return ranked
