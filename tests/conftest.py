from __future__ import annotations

import os
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

import pytest
import pytest_asyncio
from dependency_injector import providers
from fastapi.testclient import TestClient

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from outbox_service.entity.orders import (CreateOrder, Order, OrderId,
                                          OrderStatus)
from outbox_service.entity.outbox import OutboxEvent, OutboxStats
from outbox_service.exceptions import (OrderCancellationError,
                                       OrderNotFoundError,
                                       OutboxEventNotFoundError)
from outbox_service.infrastructure.persistence.db import Database
from outbox_service.infrastructure.persistence.uow import UnitOfWork
from outbox_service.main import create_app
from outbox_service.messaging.dispatcher import EventDispatcher
from outbox_service.messaging.registry import build_registry


class FakeOrderUseCase:
    """
    Заглушка для тестирования обработчиков API без реальной базы данных.
    """

    def __init__(self) -> None:
        self.created: list[CreateOrder] = []
        self._orders: dict[OrderId, Order] = {}

    async def create_order(self, payload: CreateOrder) -> Order:
        self.created.append(payload)
        order_id = OrderId(uuid4())
        order = Order(
            id=order_id,
            customer=payload.customer,
            amount=payload.amount,
            status=OrderStatus.NEW,
            created_at=datetime.now(timezone.utc),
        )
        self._orders[order_id] = order
        return order

    async def get_order(self, order_id: OrderId) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id=order_id)
        return order

    async def cancel_order(self, order_id: OrderId) -> Order:
        order = await self.get_order(order_id)
        if order.status == OrderStatus.CANCELLED:
            raise OrderCancellationError(order_id=order_id, status=order.status)
        order.status = OrderStatus.CANCELLED
        return order


class FakeOutboxUseCase:

    def __init__(self) -> None:
        self.events: dict[Any, OutboxEvent] = {}
        self.requeued: list[Any] = []

    def add_dead_letter(self, type_key: str = "OrderCreated", retries: int = 10) -> OutboxEvent:
        event = OutboxEvent(
            id=uuid4(),
            type_key=type_key,
            payload='{"orderId":"42"}',
            created_at=datetime.now(timezone.utc),
            processed=False,
            processed_at=datetime.now(timezone.utc),
            retry_count=retries,
            last_error="EventDispatchError: boom",
        )
        self.events[event.id] = event
        return event

    async def get_stats(self) -> OutboxStats:
        dead = sum(1 for event in self.events.values() if event.retry_count)
        return OutboxStats(pending=len(self.events) - dead, processed=0, dead=dead)

    async def list_dead_letters(self, limit: int = 100) -> list[OutboxEvent]:
        return [event for event in self.events.values() if event.retry_count][:limit]

    async def requeue(self, event_id: Any) -> OutboxEvent:
        event = self.events.get(event_id)
        if event is None:
            raise OutboxEventNotFoundError(event_id=event_id)
        event.retry_count = None
        event.last_error = None
        self.requeued.append(event_id)
        return event


@pytest.fixture()
def fake_order_usecase() -> FakeOrderUseCase:
    return FakeOrderUseCase()


@pytest.fixture()
def fake_outbox_usecase() -> FakeOutboxUseCase:
    return FakeOutboxUseCase()


@pytest.fixture()
def api_client(
    fake_order_usecase: FakeOrderUseCase,
    fake_outbox_usecase: FakeOutboxUseCase,
) -> TestClient:
    app = create_app()
    app.container.usecase.order_usecase.override(providers.Object(fake_order_usecase))
    app.container.usecase.outbox_usecase.override(providers.Object(fake_outbox_usecase))

    with TestClient(app) as client:
        yield client

    app.container.usecase.order_usecase.reset_override()
    app.container.usecase.outbox_usecase.reset_override()


@pytest_asyncio.fixture()
async def database(tmp_path) -> Database:
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'outbox.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture()
def registry():
    return build_registry()


@pytest.fixture()
def dispatcher() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture()
def uow(database: Database) -> UnitOfWork:
    return UnitOfWork(database)


@pytest.fixture()
def new_order() -> CreateOrder:
    return CreateOrder(customer="alice", amount=Decimal("19.90"))
