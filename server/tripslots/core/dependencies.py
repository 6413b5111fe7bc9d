"""FastAPI dependencies for authentication and notification dispatch."""

from typing import Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError

from ..services.notifications import LoggingNotificationDispatcher, NotificationDispatcher
from .config import settings
from .exceptions import AuthenticationError

ADMIN_ROLE = "admin"

_default_dispatcher = LoggingNotificationDispatcher()


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> dict:
    """
    Authentication dependency that validates Bearer tokens.

    The token's `sub` claim is the canonical actor id for every slot and
    join request operation.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        dict: User information from validated token

    Raises:
        AuthenticationError: If token is invalid or missing
    """
    if not authorization:
        raise AuthenticationError("Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError as e:
        raise AuthenticationError("Invalid authorization header format") from e

    if scheme.lower() != "bearer":
        raise AuthenticationError("Invalid authentication scheme")

    try:
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError as e:
        raise AuthenticationError(f"Token validation failed: {str(e)}") from e

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    return {
        "user_id": str(user_id),
        "username": payload.get("username"),
        "email": payload.get("email"),
        "roles": payload.get("roles", []),
    }


def is_admin(user: dict) -> bool:
    return ADMIN_ROLE in (user.get("roles") or [])


def get_notification_dispatcher() -> NotificationDispatcher:
    """
    Notification port used by the services.

    Tests override this dependency with an in-memory outbox.
    """
    return _default_dispatcher


RequiredAuth = Depends(get_current_user)
Dispatcher = Depends(get_notification_dispatcher)
