"""Service layer package."""

from .join_request_service import JoinRequestService
from .match_engine import MatchCandidate, MatchEngine
from .match_service import MatchService
from .notifications import InMemoryNotificationDispatcher, LoggingNotificationDispatcher, NotificationDispatcher
from .pricing_service import PricingService, compute_amount
from .slot_registry import SlotRegistry
from .slot_service import SlotService

__all__ = [
    "InMemoryNotificationDispatcher",
    "JoinRequestService",
    "LoggingNotificationDispatcher",
    "MatchCandidate",
    "MatchEngine",
    "MatchService",
    "NotificationDispatcher",
    "PricingService",
    "SlotRegistry",
    "SlotService",
    "compute_amount",
]
