from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from outbox_service.entity.orders import Order, OrderStatus
from outbox_service.entity.outbox import OutboxEvent, OutboxStats


class OrderResponse(BaseModel):
    id: UUID
    customer: str
    amount: Decimal
    status: OrderStatus
    created_at: datetime

    @staticmethod
    def from_entity(order: Order) -> "OrderResponse":
        return OrderResponse(**asdict(order))


class OutboxEventResponse(BaseModel):
    id: UUID
    type_key: str
    payload: str
    created_at: datetime
    processed: bool
    processed_at: Optional[datetime]
    retry_count: Optional[int]
    last_error: Optional[str]

    @staticmethod
    def from_entity(event: OutboxEvent) -> "OutboxEventResponse":
        return OutboxEventResponse(**asdict(event))


class OutboxEventListResponse(BaseModel):
    total: int
    items: List[OutboxEventResponse]


class OutboxStatsResponse(BaseModel):
    pending: int
    processed: int
    dead: int

    @staticmethod
    def from_entity(stats: OutboxStats) -> "OutboxStatsResponse":
        return OutboxStatsResponse(**asdict(stats))
