"""Join request router for the slot approval workflow."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import get_current_user, get_notification_dispatcher
from ..core.exceptions import ProblemDetailsException
from ..schemas.common import Problem
from ..schemas.join_request import (
    ApproveJoinRequest,
    CancelJoinRequest,
    DeclineJoinRequest,
    JoinRequest,
    ListPendingJoinRequests,
    PendingJoinRequestsResponse,
    RespondToJoinRequest,
    SubmitJoinRequest,
)
from ..services.join_request_service import JoinRequestService
from ..services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/join-request",
    tags=["join-request"],
    responses={status_code: {"model": Problem} for status_code in (401, 403, 404, 409, 503)}
)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
USER_DEPENDENCY = Depends(get_current_user)
DISPATCHER_DEPENDENCY = Depends(get_notification_dispatcher)


def _convert_join_request_to_schema(request_model) -> JoinRequest:
    """Convert join request model to schema."""
    return JoinRequest(
        id=str(request_model.id),
        slot_id=str(request_model.slot_id),
        booking_id=str(request_model.booking_id),
        requester_id=request_model.requester_id,
        slot_creator_id=request_model.slot_creator_id,
        guest_count=request_model.guest_count,
        guest_details=request_model.guest_details or [],
        message=request_model.message or "",
        status=getattr(request_model.status, "value", request_model.status),
        response_message=request_model.response_message or "",
        responded_at=request_model.responded_at,
        created_at=request_model.created_at
    )


def _ok(request_model) -> JSONResponse:
    return JSONResponse(
        status_code=200,
        content=_convert_join_request_to_schema(request_model).model_dump(mode="json")
    )


def _unexpected(operation: str, request_id: str, e: Exception) -> HTTPException:
    logger.error(
        f"Unexpected error in join request {operation}",
        extra={"request_id": request_id, "error": str(e)},
        exc_info=True
    )
    return HTTPException(status_code=500, detail="Internal server error")


@router.post("/submit", response_model=JoinRequest)
async def submit_join_request(
    request: SubmitJoinRequest,
    db: AsyncSession = DB_DEPENDENCY,
    current_user: dict = USER_DEPENDENCY,
    dispatcher: NotificationDispatcher = DISPATCHER_DEPENDENCY
) -> JSONResponse:
    """
    Ask the slot creator to let an existing booking join a slot.

    The request stays PENDING until the creator approves or declines it.
    """
    service = JoinRequestService(db, dispatcher=dispatcher)

    try:
        join_request = await service.submit(
            slot_id=request.slot_id,
            booking_id=request.booking_id,
            requester_id=current_user["user_id"],
            guest_details=request.guest_details,
            message=request.message
        )
        return JSONResponse(
            status_code=201,
            content=_convert_join_request_to_schema(join_request).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in join request submission",
            extra={
                "slot_id": str(request.slot_id),
                "booking_id": str(request.booking_id),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/respond", response_model=JoinRequest)
async def respond_to_join_request(
    request: RespondToJoinRequest,
    db: AsyncSession = DB_DEPENDENCY,
    current_user: dict = USER_DEPENDENCY,
    dispatcher: NotificationDispatcher = DISPATCHER_DEPENDENCY
) -> JSONResponse:
    """
    Approve or decline a pending request.

    An approval that no longer fits returns 200 with status DECLINED and the
    reason in response_message.
    """
    service = JoinRequestService(db, dispatcher=dispatcher)

    try:
        join_request = await service.respond(
            request.request_id,
            current_user["user_id"],
            request.decision,
            request.message
        )
        return _ok(join_request)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("response", str(request.request_id), e) from e


@router.post("/approve", response_model=JoinRequest)
async def approve_join_request(
    request: ApproveJoinRequest,
    db: AsyncSession = DB_DEPENDENCY,
    current_user: dict = USER_DEPENDENCY,
    dispatcher: NotificationDispatcher = DISPATCHER_DEPENDENCY
) -> JSONResponse:
    """Approve a pending request; see /respond."""
    service = JoinRequestService(db, dispatcher=dispatcher)

    try:
        join_request = await service.approve(request.request_id, current_user["user_id"], request.message)
        return _ok(join_request)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("approval", str(request.request_id), e) from e


@router.post("/decline", response_model=JoinRequest)
async def decline_join_request(
    request: DeclineJoinRequest,
    db: AsyncSession = DB_DEPENDENCY,
    current_user: dict = USER_DEPENDENCY,
    dispatcher: NotificationDispatcher = DISPATCHER_DEPENDENCY
) -> JSONResponse:
    """Decline a pending request."""
    service = JoinRequestService(db, dispatcher=dispatcher)

    try:
        join_request = await service.decline(request.request_id, current_user["user_id"], request.reason)
        return _ok(join_request)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("decline", str(request.request_id), e) from e


@router.post("/cancel", response_model=JoinRequest)
async def cancel_join_request(
    request: CancelJoinRequest,
    db: AsyncSession = DB_DEPENDENCY,
    current_user: dict = USER_DEPENDENCY
) -> JSONResponse:
    """Withdraw one of the caller's own pending requests."""
    service = JoinRequestService(db)

    try:
        join_request = await service.cancel(request.request_id, current_user["user_id"])
        return _ok(join_request)

    except ProblemDetailsException:
        raise

    except Exception as e:
        raise _unexpected("cancellation", str(request.request_id), e) from e


@router.post("/pending", response_model=PendingJoinRequestsResponse)
async def list_pending_join_requests(
    request: ListPendingJoinRequests,
    db: AsyncSession = DB_DEPENDENCY,
    current_user: dict = USER_DEPENDENCY
) -> JSONResponse:
    """Pending requests on the caller's slots, newest first."""
    service = JoinRequestService(db)

    try:
        pending = await service.list_pending_for_creator(current_user["user_id"], limit=request.limit)
        response_data = PendingJoinRequestsResponse(
            items=[_convert_join_request_to_schema(item) for item in pending]
        )

        logger.info(
            "Pending join requests listed",
            extra={"creator_id": current_user["user_id"], "total_found": len(pending)}
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error listing pending join requests",
            extra={"creator_id": current_user["user_id"], "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
