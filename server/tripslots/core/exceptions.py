"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from ..models.slot import Slot


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def slot_state(slot: "Slot") -> Dict[str, Any]:
    """Authoritative capacity snapshot attached to every slot-related rejection."""
    return {
        "slot_id": str(slot.id),
        "status": getattr(slot.status, "value", slot.status),
        "max_capacity": slot.max_capacity,
        "available_capacity": slot.available_capacity,
    }


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        # Create the problem details object
        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        # Add extensions
        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    @property
    def code(self) -> Optional[str]:
        """Application-specific error code, if any."""
        return self.problem_details.get("code")


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authorization Required",
            detail=detail,
            type_uri="https://example.com/problems/authentication-required",
            instance=instance,
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri="https://example.com/problems/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


# Business logic exceptions

class DomainError(ProblemDetailsException):
    """Expected, recoverable domain failure with a stable error code."""

    def __init__(
        self,
        status_code: int,
        code: str,
        title: str,
        detail: str,
        retryable: bool = False,
        slot: Optional["Slot"] = None,
        extensions: Optional[Dict[str, Any]] = None,
    ):
        payload: Dict[str, Any] = {"code": code, "retryable": retryable}
        if slot is not None:
            payload["slot"] = slot_state(slot)
        payload.update(extensions or {})

        super().__init__(
            status_code=status_code,
            title=title,
            detail=detail,
            type_uri=f"https://example.com/problems/{code.lower().replace('_', '-')}",
            extensions=payload,
        )


class InvalidGuestDataError(DomainError):
    """Guest details cannot be priced (e.g. a negative age)."""

    def __init__(self, detail: str, guest_index: Optional[int] = None, slot: Optional["Slot"] = None):
        extensions = {}
        if guest_index is not None:
            extensions["guest_index"] = guest_index
        super().__init__(
            status_code=422,
            code="INVALID_GUEST_DATA",
            title="Invalid Guest Data",
            detail=detail,
            slot=slot,
            extensions=extensions,
        )


class DuplicateSlotError(DomainError):
    """An open slot already exists for the package, destination and date."""

    def __init__(self, existing_slot: "Slot"):
        super().__init__(
            status_code=409,
            code="DUPLICATE_SLOT",
            title="Duplicate Slot",
            detail=(
                "A slot already exists for this package, destination, and date. "
                "You can join the existing slot instead."
            ),
            slot=existing_slot,
            extensions={"existing_slot_id": str(existing_slot.id)},
        )


class CapacityExceededError(DomainError):
    """The seed booking does not fit into the requested slot capacity."""

    def __init__(self, guest_count: int, max_capacity: int):
        super().__init__(
            status_code=422,
            code="CAPACITY_EXCEEDED",
            title="Capacity Exceeded",
            detail=f"Guest count ({guest_count}) cannot exceed slot capacity ({max_capacity})",
            extensions={"guest_count": guest_count, "max_capacity": max_capacity},
        )


class SlotFullError(DomainError):
    """Admitting the booking would overbook the slot."""

    def __init__(self, slot: "Slot", requested: int):
        super().__init__(
            status_code=409,
            code="SLOT_FULL",
            title="Slot Full",
            detail=(
                f"Slot {slot.id} has {slot.available_capacity} seat(s) left, "
                f"{requested} requested"
            ),
            slot=slot,
            extensions={"requested_capacity": requested},
        )


class SlotClosedError(DomainError):
    """The slot was closed and admits nobody."""

    def __init__(self, slot: "Slot"):
        super().__init__(
            status_code=409,
            code="SLOT_CLOSED",
            title="Slot Closed",
            detail=f"Slot {slot.id} is closed",
            slot=slot,
        )


class SlotNotJoinableError(DomainError):
    """A join request cannot be filed against the slot in its current state."""

    def __init__(self, slot: "Slot", guest_count: int):
        if slot.available_capacity < guest_count and slot.status != "CLOSED":
            detail = (
                f"Only {slot.available_capacity} seat(s) available, "
                f"but you're trying to add {guest_count} guest(s)"
            )
        else:
            detail = "Slot is full or closed"
        super().__init__(
            status_code=409,
            code="SLOT_NOT_JOINABLE",
            title="Slot Not Joinable",
            detail=detail,
            slot=slot,
            extensions={"requested_capacity": guest_count},
        )


class AlreadyInSlotError(DomainError):
    """The booking is already a member of a slot."""

    def __init__(self, booking_id: str, slot_id: str, slot: Optional["Slot"] = None):
        super().__init__(
            status_code=409,
            code="ALREADY_IN_SLOT",
            title="Already In Slot",
            detail=f"Booking {booking_id} already belongs to slot {slot_id}",
            slot=slot,
            extensions={"booking_id": booking_id, "current_slot_id": slot_id},
        )


class DuplicatePendingRequestError(DomainError):
    """A pending request for the same slot and booking already exists."""

    def __init__(self, request_id: Optional[str], slot: "Slot"):
        extensions = {}
        if request_id:
            extensions["request_id"] = request_id
        super().__init__(
            status_code=409,
            code="DUPLICATE_PENDING_REQUEST",
            title="Duplicate Pending Request",
            detail="You already have a pending request for this slot",
            slot=slot,
            extensions=extensions,
        )


class RequestAlreadyResolvedError(DomainError):
    """The join request has already left the pending state."""

    def __init__(self, request_id: str, status: str, slot: Optional["Slot"] = None):
        super().__init__(
            status_code=409,
            code="REQUEST_ALREADY_RESOLVED",
            title="Request Already Resolved",
            detail=f"Request is already {status.lower()}",
            slot=slot,
            extensions={"request_id": request_id, "request_status": status},
        )


class NotAuthorizedError(DomainError):
    """The acting user may not perform this transition."""

    def __init__(self, detail: str, slot: Optional["Slot"] = None):
        super().__init__(
            status_code=403,
            code="NOT_AUTHORIZED",
            title="Not Authorized",
            detail=detail,
            slot=slot,
        )


class SlotBusyError(DomainError):
    """The slot's critical section could not be entered or a concurrent write won."""

    def __init__(self, slot_key: str, detail: Optional[str] = None):
        super().__init__(
            status_code=503,
            code="SLOT_BUSY",
            title="Slot Busy",
            detail=detail or f"Slot {slot_key} is being modified by another request, retry shortly",
            retryable=True,
            extensions={"slot_key": slot_key},
        )


class InvariantViolationError(ProblemDetailsException):
    """A capacity invariant was found broken; the mutation is aborted."""

    def __init__(self, detail: str, slot_id: Optional[str] = None):
        extensions = {
            "code": "INVARIANT_VIOLATION",
            "retryable": False,
            "error_id": str(uuid.uuid4()),
            "timestamp": _timestamp(),
        }
        if slot_id:
            extensions["slot_id"] = slot_id
        super().__init__(
            status_code=500,
            title="Internal Server Error",
            detail=detail,
            type_uri="https://example.com/problems/internal-server-error",
            extensions=extensions,
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Render request validation failures as Problem Details with violations.

    Args:
        request: FastAPI request object
        exc: Validation error raised by FastAPI

    Returns:
        JSONResponse: Problem Details formatted response
    """
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content={
            "type": "https://example.com/problems/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "The request data failed validation",
            "instance": str(request.url),
            "violations": violations,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())

    problem_details = {
        "type": "https://example.com/problems/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": error_id,
        "timestamp": _timestamp(),
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
    )
