"""
Обработчики событий сервиса и сборка диспетчера.
"""

from __future__ import annotations

from typing import Optional

from outbox_service.entity.events import DomainEvent
from outbox_service.logger import logger
from outbox_service.messaging.dispatcher import EventDispatcher
from outbox_service.messaging.publisher import RabbitEventPublisher


def audit_event(event: DomainEvent) -> None:
    logger.info(
        "Domain event delivered",
        extra={"event_type": event.event_key(), "payload": event.to_payload()},
    )


def build_dispatcher(
    *,
    handler_timeout: Optional[float] = None,
    publisher: Optional[RabbitEventPublisher] = None,
) -> EventDispatcher:
    dispatcher = EventDispatcher(handler_timeout=handler_timeout)
    dispatcher.subscribe(DomainEvent, audit_event)
    if publisher is not None:
        dispatcher.subscribe(DomainEvent, publisher)
    return dispatcher
