"""Age-banded pricing for bookings."""

import logging
from collections import Counter
from collections.abc import Iterable
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import InvalidGuestDataError, NotFoundError
from ..models.package import Package
from ..schemas.common import GuestDetail, Money, PriceTable
from ..schemas.pricing import AgeBandBreakdown, PriceQuote, PriceQuoteRequest

logger = logging.getLogger(__name__)

ADULT_MIN_AGE = 19
CHILD_MIN_AGE = 5


class AgeBand(str, Enum):
    """Pricing band a guest falls into."""
    ADULT = "adult"
    CHILD = "child"
    INFANT = "infant"


def age_band(age: int) -> AgeBand:
    """
    Classify an age: over 18 is an adult, 5 to 18 a child, under 5 an infant.

    Raises:
        InvalidGuestDataError: If the age is negative
    """
    if age < 0:
        raise InvalidGuestDataError(f"Guest age cannot be negative (got {age})")
    if age >= ADULT_MIN_AGE:
        return AgeBand.ADULT
    if age >= CHILD_MIN_AGE:
        return AgeBand.CHILD
    return AgeBand.INFANT


def price_table_for(package: Package) -> PriceTable:
    return PriceTable(
        adult=package.price_adult,
        child=package.price_child,
        infant=package.price_infant or 0,
    )


def count_bands(guests: Iterable[GuestDetail]) -> Counter:
    """Number of guests per age band; validates every age."""
    counts: Counter = Counter()
    for index, guest in enumerate(guests):
        try:
            counts[age_band(guest.age)] += 1
        except InvalidGuestDataError as e:
            raise InvalidGuestDataError(e.detail, guest_index=index) from e
    return counts


def compute_amount(guests: Iterable[GuestDetail], price_table: PriceTable) -> int:
    """
    Total price of a guest list in minor units.

    Pure: the result depends only on the ages and the table.

    Raises:
        InvalidGuestDataError: If any guest has a negative age
    """
    counts = count_bands(guests)
    return (
        counts[AgeBand.ADULT] * price_table.adult
        + counts[AgeBand.CHILD] * price_table.child
        + counts[AgeBand.INFANT] * price_table.infant
    )


class PricingService:
    """Service for package price quotes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_package(self, package_id: UUID) -> Optional[Package]:
        stmt = select(Package).where(Package.id == package_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_package_or_raise(self, package_id: UUID) -> Package:
        """
        Get a package by ID or raise NotFoundError.

        Raises:
            NotFoundError: If the package does not exist
        """
        package = await self.get_package(package_id)
        if not package:
            raise NotFoundError(resource_type="package", resource_id=str(package_id))
        return package

    async def quote(self, request: PriceQuoteRequest) -> PriceQuote:
        """
        Price a guest list against a package's age-banded price table.

        Raises:
            NotFoundError: If the package does not exist
            InvalidGuestDataError: If any guest has a negative age
        """
        package = await self.get_package_or_raise(request.package_id)
        counts = count_bands(request.guest_details)
        amount = compute_amount(request.guest_details, price_table_for(package))

        logger.info(
            "Price quoted",
            extra={
                "package_id": str(package.id),
                "guest_count": len(request.guest_details),
                "amount": amount,
                "currency": package.price_currency
            }
        )

        return PriceQuote(
            package_id=str(package.id),
            guest_count=len(request.guest_details),
            breakdown=AgeBandBreakdown(
                adults=counts[AgeBand.ADULT],
                children=counts[AgeBand.CHILD],
                infants=counts[AgeBand.INFANT],
            ),
            total=Money(amount=amount, currency=package.price_currency),
        )
