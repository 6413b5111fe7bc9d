"""Match router for slot recommendations."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import ProblemDetailsException
from ..schemas.match import MatchQuery, MatchResponse, PackageSummary, SimilarSlotsRequest, SlotMatch
from ..services.match_engine import MatchCandidate
from ..services.match_service import MatchService
from .slot import convert_slot_to_schema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/match", tags=["match"])


def _convert_candidate_to_schema(candidate: MatchCandidate) -> SlotMatch:
    """Convert a ranked candidate to schema."""
    package = candidate.slot.package
    return SlotMatch(
        slot=convert_slot_to_schema(candidate.slot),
        package=PackageSummary(
            id=str(package.id),
            title=package.title,
            duration=package.duration,
            category=package.category,
            package_type=package.package_type,
            price_adult=package.price_adult,
            currency=package.price_currency
        ),
        score=candidate.score,
        match_percentage=candidate.match_percentage
    )


def _respond(candidates: list[MatchCandidate]) -> JSONResponse:
    response_data = MatchResponse(
        items=[_convert_candidate_to_schema(candidate) for candidate in candidates],
        total=len(candidates)
    )
    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )


@router.post("/search", response_model=MatchResponse)
async def search_matches(
    request: MatchQuery,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """
    Rank open slots for a solo traveler.

    Scores availability, date fit, destination, budget, package attributes,
    occupancy and recency; best first.
    """
    match_service = MatchService(db)

    try:
        candidates = await match_service.find_matches(request)
        return _respond(candidates)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in slot match search",
            extra={
                "filters": request.model_dump(mode="json", exclude_none=True),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/similar", response_model=MatchResponse)
async def similar_slots(
    request: SimilarSlotsRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Alternatives to a slot, e.g. after a declined join request."""
    match_service = MatchService(db)

    try:
        candidates = await match_service.find_similar(request.slot_id, limit=request.limit)
        return _respond(candidates)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in similar slot search",
            extra={"slot_id": str(request.slot_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
