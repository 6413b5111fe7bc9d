"""Weighted scoring and ranking of candidate slots for a solo traveler."""

import calendar
import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from ..core.database import utcnow
from ..models.slot import Slot, SlotStatus
from ..schemas.match import MatchQuery

# Score at which match_percentage reaches 100
PERFECT_SCORE = 150

DEFAULT_WINDOW_MONTHS = 3


@dataclass(frozen=True)
class MatchCandidate:
    """A slot with its match score."""

    slot: Slot
    score: int

    @property
    def match_percentage(self) -> int:
        return min(100, round_half_up(self.score / PERFECT_SCORE * 100))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def add_months(day: date, months: int) -> date:
    """Same day `months` later, clamped to the end of a shorter month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def date_window(prefs: MatchQuery, today: date) -> tuple[date, Optional[date]]:
    """
    Inclusive trip date window for a query.

    Without a preferred range every future date qualifies (no upper bound).
    With a range, a missing start is today and a missing end is three months out.
    """
    date_range = prefs.preferred_date_range
    if date_range is None or (date_range.start is None and date_range.end is None):
        return today, None
    start = date_range.start or today
    end = date_range.end or add_months(today, DEFAULT_WINDOW_MONTHS)
    return start, end


def availability_points(available: int) -> int:
    return min(40, available * 10)


def date_points(trip_date: date, preferred_start: Optional[date], today: date) -> float:
    if preferred_start is not None:
        days = abs((trip_date - preferred_start).days)
        if days == 0:
            return 30
        if days <= 3:
            return 25
        if days <= 7:
            return 20
        if days <= 14:
            return 15
        return max(0.0, 10 - days / 10)

    days_out = (trip_date - today).days
    if 14 <= days_out <= 28:
        return 20
    if 7 <= days_out < 14:
        return 15
    return 0


def destination_points(slot: Slot, prefs: MatchQuery) -> int:
    if prefs.destination_id is not None and slot.destination_id == prefs.destination_id:
        return 20
    if prefs.destination_name and prefs.destination_name.lower() in (slot.destination_name or "").lower():
        return 15
    return 0


def budget_points(adult_price: int, budget: Optional[int]) -> int:
    if not budget:
        return 0
    deviation = abs(adult_price - budget) / budget
    if deviation <= 0.1:
        return 20
    if deviation <= 0.2:
        return 15
    if deviation <= 0.3:
        return 10
    if deviation <= 0.5:
        return 5
    return 0


def _same(value: Optional[str], wanted: Optional[str]) -> bool:
    return bool(value and wanted) and value.lower() == wanted.lower()


def package_points(slot: Slot, prefs: MatchQuery) -> int:
    """Category, package type and travel style terms."""
    package = slot.package
    points = 0
    if _same(package.category, prefs.category):
        points += 15
    if _same(package.package_type, prefs.package_type):
        points += 15
    if prefs.travel_style:
        style = prefs.travel_style.lower()
        if any(style in feature.lower() for feature in package.features or []):
            points += 10
    return points


def occupancy_points(occupancy_rate: float) -> int:
    if 0.3 <= occupancy_rate <= 0.7:
        return 10
    if 0 < occupancy_rate < 0.3:
        return 5
    return 0


def recency_points(created_at: Optional[datetime], now: datetime) -> int:
    if created_at is None:
        return 0
    age = now - created_at
    if age <= timedelta(days=7):
        return 5
    if age <= timedelta(days=14):
        return 3
    return 0


class MatchEngine:
    """
    Ranks candidate slots against a traveler's preferences.

    Pure: candidates are never mutated and the only clock is the `now`
    passed to `rank`.
    """

    def eligible(self, slot: Slot, prefs: MatchQuery, window: Optional[tuple[date, Optional[date]]]) -> bool:
        if slot.status == SlotStatus.CLOSED:
            return False
        if slot.available_capacity < prefs.min_available:
            return False
        if window is not None:
            start, end = window
            if slot.trip_date < start:
                return False
            if end is not None and slot.trip_date > end:
                return False
        return True

    def score(self, slot: Slot, prefs: MatchQuery, now: datetime) -> int:
        preferred_start = prefs.preferred_date_range.start if prefs.preferred_date_range else None
        total = (
            availability_points(slot.available_capacity)
            + date_points(slot.trip_date, preferred_start, now.date())
            + destination_points(slot, prefs)
            + budget_points(slot.package.price_adult, prefs.budget)
            + package_points(slot, prefs)
            + occupancy_points(slot.occupancy_rate)
            + recency_points(slot.created_at, now)
        )
        return round_half_up(total)

    def rank(
        self,
        candidates: Iterable[Slot],
        prefs: MatchQuery,
        now: Optional[datetime] = None,
        apply_window: bool = True,
    ) -> list[MatchCandidate]:
        """
        Score eligible candidates and order them best first.

        Ties break on the earlier trip date, then more seats left, then slot id,
        so equal inputs always produce the same order. The caller truncates.

        Args:
            candidates: Slots with members and package loaded
            prefs: Traveler preferences
            now: Naive UTC reference time; defaults to the current time
            apply_window: Filter on the query's date window
        """
        now = now or utcnow()
        window = date_window(prefs, now.date()) if apply_window else None

        ranked = [
            MatchCandidate(slot=slot, score=self.score(slot, prefs, now))
            for slot in candidates
            if self.eligible(slot, prefs, window)
        ]
        ranked.sort(
            key=lambda c: (-c.score, c.slot.trip_date, -c.slot.available_capacity, str(c.slot.id))
        )
        return ranked
