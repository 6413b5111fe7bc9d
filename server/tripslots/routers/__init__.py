"""FastAPI routers package."""

from .health import router as health_router
from .join_request import router as join_request_router
from .match import router as match_router
from .metrics import router as metrics_router
from .pricing import router as pricing_router
from .slot import router as slot_router

__all__ = [
    "health_router",
    "join_request_router",
    "match_router",
    "metrics_router",
    "pricing_router",
    "slot_router",
]
