from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from outbox_service.entity.events import DomainEvent


@dataclass(slots=True)
class OutboxEvent:
    id: UUID
    type_key: str
    payload: str
    created_at: datetime
    processed: bool
    processed_at: Optional[datetime]
    retry_count: Optional[int]
    last_error: Optional[str]


@dataclass(slots=True)
class NewOutboxEvent:
    id: UUID
    type_key: str
    payload: str
    created_at: datetime


@dataclass(slots=True)
class CapturedEvent:
    """
    Запись для outbox вместе с исходным событием (нужно для fast path).
    """

    record: NewOutboxEvent
    event: DomainEvent


@dataclass(slots=True)
class OutboxStats:
    pending: int = 0
    processed: int = 0
    dead: int = 0
