"""
Определения схемы ORM SQLAlchemy для заказов и outbox.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID as UUIDType

from sqlalchemy import (Boolean, DateTime, Enum, Index, Integer, Numeric, String,
                        Text, Uuid)
from sqlalchemy.orm import Mapped, mapped_column

from outbox_service.entity.events import EventRaiser
from outbox_service.entity.orders import (OrderCancelled, OrderCreated,
                                          OrderStatus)
from outbox_service.entity.outbox import NewOutboxEvent
from outbox_service.infrastructure.persistence.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(Base, EventRaiser):
    __tablename__ = "orders"

    id: Mapped[UUIDType] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, unique=True
    )
    customer: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus), nullable=False, default=OrderStatus.NEW
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    @classmethod
    def place(cls, customer: str, amount: Decimal) -> "Order":
        order = cls(
            id=uuid.uuid4(),
            customer=customer,
            amount=amount,
            status=OrderStatus.NEW,
            created_at=utcnow(),
        )
        order.raise_event(
            OrderCreated(
                order_id=str(order.id),
                customer=customer,
                amount=str(amount),
            )
        )
        return order

    def cancel(self) -> None:
        self.status = OrderStatus.CANCELLED
        self.raise_event(OrderCancelled(order_id=str(self.id)))


class Outbox(Base):
    __tablename__ = "outbox"
    __table_args__ = (
        Index("ix_outbox_processed_created_at", "processed", "created_at"),
    )

    id: Mapped[UUIDType] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, unique=True
    )
    type_key: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    retry_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_error: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    @classmethod
    def from_record(cls, record: NewOutboxEvent) -> "Outbox":
        return cls(
            id=record.id,
            type_key=record.type_key,
            payload=record.payload,
            created_at=record.created_at,
            processed=False,
        )
