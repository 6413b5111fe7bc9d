"""Slot router for slot lifecycle operations."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import get_current_user, get_notification_dispatcher, is_admin
from ..core.exceptions import ProblemDetailsException
from ..schemas.common import Problem
from ..schemas.slot import (
    CloseSlotRequest,
    CreateSlotRequest,
    CreateSlotResponse,
    FindOpenSlotRequest,
    FindOpenSlotResponse,
    GetSlotRequest,
    RemoveBookingRequest,
    SeedBooking,
    Slot,
)
from ..services.notifications import NotificationDispatcher
from ..services.slot_service import SlotService

logger = logging.getLogger(__name__)

# Error bodies documented in the OpenAPI schema
PROBLEM_RESPONSES = {
    401: {"model": Problem},
    403: {"model": Problem},
    404: {"model": Problem},
    409: {"model": Problem},
    422: {"model": Problem},
    503: {"model": Problem},
}

router = APIRouter(prefix="/v1/slot", tags=["slot"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
USER_DEPENDENCY = Depends(get_current_user)
DISPATCHER_DEPENDENCY = Depends(get_notification_dispatcher)


def convert_slot_to_schema(slot_model) -> Slot:
    """Convert slot model to schema with derived capacity."""
    return Slot(
        id=str(slot_model.id),
        package_id=str(slot_model.package_id),
        destination_id=str(slot_model.destination_id),
        destination_name=slot_model.destination_name,
        slot_name=slot_model.slot_name,
        trip_date=slot_model.trip_date,
        max_capacity=slot_model.max_capacity,
        occupied_capacity=slot_model.occupied_capacity,
        available_capacity=slot_model.available_capacity,
        status=getattr(slot_model.status, "value", slot_model.status),
        creator_id=slot_model.creator_id,
        creator_booking_id=str(slot_model.creator_booking_id),
        booking_ids=[str(member.booking_id) for member in slot_model.members],
        created_at=slot_model.created_at,
        updated_at=slot_model.updated_at
    )


def _convert_booking_to_schema(booking_model, currency: str) -> SeedBooking:
    """Convert seed booking model to schema."""
    return SeedBooking(
        id=str(booking_model.id),
        guest_count=booking_model.guest_count,
        base_amount=booking_model.base_amount,
        final_amount=booking_model.final_amount,
        currency=currency,
        payment_status=getattr(booking_model.payment_status, "value", booking_model.payment_status)
    )


@router.post("/create", response_model=CreateSlotResponse)
async def create_slot(
    request: CreateSlotRequest,
    db: AsyncSession = DB_DEPENDENCY,
    current_user: dict = USER_DEPENDENCY,
    dispatcher: NotificationDispatcher = DISPATCHER_DEPENDENCY
) -> JSONResponse:
    """
    Create a slot with the caller's booking as its first member.

    Fails with DUPLICATE_SLOT (carrying existing_slot_id) when an open slot
    already exists for the package, destination and date.
    """
    slot_service = SlotService(db, dispatcher=dispatcher)

    try:
        created = await slot_service.create_slot(request, creator_id=current_user["user_id"])

        response_data = CreateSlotResponse(
            slot=convert_slot_to_schema(created.slot),
            booking=_convert_booking_to_schema(created.booking, created.package.price_currency)
        )

        logger.info(
            "Slot created via API",
            extra={
                "slot_id": response_data.slot.id,
                "booking_id": response_data.booking.id,
                "creator_id": current_user["user_id"]
            }
        )

        return JSONResponse(
            status_code=201,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in slot creation",
            extra={
                "package_id": str(request.package_id),
                "trip_date": request.trip_date.isoformat(),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=Slot)
async def get_slot(
    request: GetSlotRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Get slot details with derived capacity."""
    slot_service = SlotService(db)

    try:
        slot = await slot_service.get_slot(request.slot_id)
        return JSONResponse(
            status_code=200,
            content=convert_slot_to_schema(slot).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in slot retrieval",
            extra={"slot_id": str(request.slot_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/find-open", response_model=FindOpenSlotResponse)
async def find_open_slot(
    request: FindOpenSlotRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Return the open slot for a package, destination and date, or null."""
    slot_service = SlotService(db)

    try:
        slot = await slot_service.find_open_slot(request)
        response_data = FindOpenSlotResponse(
            slot=convert_slot_to_schema(slot) if slot else None
        )
        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in open slot lookup",
            extra={
                "package_id": str(request.package_id),
                "destination_id": str(request.destination_id),
                "trip_date": request.trip_date.isoformat(),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/remove-booking", response_model=Slot)
async def remove_booking(
    request: RemoveBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    current_user: dict = USER_DEPENDENCY
) -> JSONResponse:
    """Remove a booking from a slot, freeing its seats."""
    slot_service = SlotService(db)

    try:
        slot = await slot_service.remove_booking(
            request.slot_id,
            request.booking_id,
            actor_id=current_user["user_id"],
            is_admin=is_admin(current_user)
        )
        return JSONResponse(
            status_code=200,
            content=convert_slot_to_schema(slot).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking removal",
            extra={
                "slot_id": str(request.slot_id),
                "booking_id": str(request.booking_id),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/close", response_model=Slot)
async def close_slot(
    request: CloseSlotRequest,
    db: AsyncSession = DB_DEPENDENCY,
    current_user: dict = USER_DEPENDENCY
) -> JSONResponse:
    """Close a slot to further admissions. Requires the admin role."""
    slot_service = SlotService(db)

    try:
        slot = await slot_service.close_slot(
            request.slot_id,
            actor_id=current_user["user_id"],
            is_admin=is_admin(current_user)
        )
        return JSONResponse(
            status_code=200,
            content=convert_slot_to_schema(slot).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in slot close",
            extra={"slot_id": str(request.slot_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
