"""Pricing router for age-banded quotes."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import ProblemDetailsException
from ..schemas.pricing import PriceQuote, PriceQuoteRequest
from ..services.pricing_service import PricingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/pricing", tags=["pricing"])


@router.post("/quote", response_model=PriceQuote)
async def quote_price(
    request: PriceQuoteRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Price a guest list against a package without booking anything."""
    pricing_service = PricingService(db)

    try:
        quote = await pricing_service.quote(request)
        return JSONResponse(
            status_code=200,
            content=quote.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in price quote",
            extra={"package_id": str(request.package_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
