"""Notification port for slot domain events."""

import logging
from typing import Protocol

from ..core.observability import get_logger
from ..schemas.events import DomainEvent

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    """Receives domain events after the transition that raised them has committed."""

    async def dispatch(self, event: DomainEvent) -> None: ...


class LoggingNotificationDispatcher:
    """Writes every event to the structured log; the default in production."""

    def __init__(self):
        self.logger = get_logger("tripslots.events")

    async def dispatch(self, event: DomainEvent) -> None:
        self.logger.info(event.event_type, **event.model_dump(mode="json"))


class InMemoryNotificationDispatcher:
    """Outbox that keeps events in memory for inspection."""

    def __init__(self):
        self.events: list[DomainEvent] = []

    async def dispatch(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[DomainEvent]:
        return [event for event in self.events if isinstance(event, event_type)]

    def clear(self) -> None:
        self.events.clear()


async def publish(dispatcher: NotificationDispatcher, *events: DomainEvent) -> None:
    """
    Hand events to the dispatcher.

    Called after commit: a dispatcher failure is logged and never undoes the
    committed state change.
    """
    for event in events:
        try:
            await dispatcher.dispatch(event)
        except Exception as e:
            logger.error(
                "Notification dispatch failed",
                extra={
                    "event_type": event.event_type,
                    "error": str(e)
                },
                exc_info=True
            )
