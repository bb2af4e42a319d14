from __future__ import annotations

import typing
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar

from pydantic import Field

from outbox_service.entity.events import DomainEvent

OrderId = typing.NewType("OrderId", uuid.UUID)


class OrderStatus(str, Enum):
    NEW = "NEW"
    CANCELLED = "CANCELLED"


@dataclass(slots=True)
class Order:
    id: OrderId
    customer: str
    amount: Decimal
    status: OrderStatus
    created_at: datetime


@dataclass(slots=True)
class CreateOrder:
    customer: str
    amount: Decimal


class OrderCreated(DomainEvent):
    type_key: ClassVar[str] = "OrderCreated"

    order_id: str = Field(alias="orderId")
    customer: str | None = None
    amount: str | None = None


class OrderCancelled(DomainEvent):
    type_key: ClassVar[str] = "OrderCancelled"

    order_id: str = Field(alias="orderId")
