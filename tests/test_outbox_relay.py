from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest

from outbox_service.entity.events import EventRaiser
from outbox_service.entity.orders import OrderCancelled, OrderCreated
from outbox_service.entity.outbox import NewOutboxEvent, OutboxEvent
from outbox_service.infrastructure.persistence.capture import capture_events
from outbox_service.infrastructure.persistence.db import Database
from outbox_service.infrastructure.persistence.db.schema import Order as OrderModel
from outbox_service.infrastructure.persistence.db.schema import Outbox as OutboxModel
from outbox_service.infrastructure.persistence.repositories.outbox import OutboxRepository
from outbox_service.messaging.relay import OutboxRelay, RelayState, shutdown


class Holder(EventRaiser):
    pass


async def stage(database: Database, *events, created_at: datetime | None = None) -> list[UUID]:
    holder = Holder()
    for event in events:
        holder.raise_event(event)
    captured = capture_events([holder], now=created_at)
    await insert(database, *(item.record for item in captured))
    return [item.record.id for item in captured]


async def insert(database: Database, *records: NewOutboxEvent) -> None:
    async with database.connection() as session:
        session.add_all(OutboxModel.from_record(record) for record in records)
        await session.commit()


async def load(database: Database, event_id: UUID) -> OutboxEvent:
    async with database.connection() as session:
        return await OutboxRepository(session).get_event(event_id)


def make_relay(database, registry, dispatcher, **kwargs) -> OutboxRelay:
    options = {"batch_size": 100, "poll_interval": 10.0, "idle_backoff_multiplier": 3.0}
    options.update(kwargs)
    return OutboxRelay(database, registry, dispatcher, **options)


class FlakyHandler:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls: list[OrderCreated] = []

    async def __call__(self, event: OrderCreated) -> None:
        self.calls.append(event)
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("handler down")


@pytest.mark.asyncio()
async def test_order_created_is_delivered_once_and_marked_processed(
    database, registry, dispatcher
) -> None:
    received: list[OrderCreated] = []
    dispatcher.subscribe(OrderCreated, received.append)
    (event_id,) = await stage(database, OrderCreated(order_id="42"))
    relay = make_relay(database, registry, dispatcher)

    result = await relay.poll_once()

    assert result.fetched == 1
    assert result.succeeded == 1
    assert received == [OrderCreated(order_id="42")]
    record = await load(database, event_id)
    assert record.processed is True
    assert record.processed_at is not None
    assert record.retry_count is None


@pytest.mark.asyncio()
async def test_handler_failure_is_retried_on_next_poll(database, registry, dispatcher) -> None:
    handler = FlakyHandler(failures=1)
    dispatcher.subscribe(OrderCreated, handler)
    (event_id,) = await stage(database, OrderCreated(order_id="42"))
    relay = make_relay(database, registry, dispatcher)

    first = await relay.poll_once()

    assert first.failed == 1
    record = await load(database, event_id)
    assert record.processed is False
    assert record.retry_count == 1
    assert record.processed_at is not None
    assert "handler down" in record.last_error

    await relay.poll_once()

    record = await load(database, event_id)
    assert record.processed is True
    assert len(handler.calls) == 2


@pytest.mark.asyncio()
async def test_two_failures_then_success_keeps_retry_count(database, registry, dispatcher) -> None:
    handler = FlakyHandler(failures=2)
    dispatcher.subscribe(OrderCreated, handler)
    (event_id,) = await stage(database, OrderCreated(order_id="7"))
    relay = make_relay(database, registry, dispatcher)

    for _ in range(3):
        await relay.poll_once()

    record = await load(database, event_id)
    assert record.retry_count == 2
    assert record.processed is True


@pytest.mark.asyncio()
async def test_batch_is_dispatched_in_creation_order(database, registry, dispatcher) -> None:
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    await stage(database, OrderCreated(order_id="t3"), created_at=base + timedelta(seconds=3))
    await stage(database, OrderCreated(order_id="t1"), created_at=base + timedelta(seconds=1))
    await stage(database, OrderCreated(order_id="t2"), created_at=base + timedelta(seconds=2))
    received: list[str] = []
    dispatcher.subscribe(OrderCreated, lambda event: received.append(event.order_id))
    relay = make_relay(database, registry, dispatcher)

    await relay.poll_once()

    assert received == ["t1", "t2", "t3"]


@pytest.mark.asyncio()
async def test_batch_size_limits_one_poll(database, registry, dispatcher) -> None:
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for index in range(3):
        await stage(
            database,
            OrderCreated(order_id=str(index)),
            created_at=base + timedelta(seconds=index),
        )
    received: list[str] = []
    dispatcher.subscribe(OrderCreated, lambda event: received.append(event.order_id))
    relay = make_relay(database, registry, dispatcher, batch_size=2)

    first = await relay.poll_once()
    second = await relay.poll_once()

    assert first.fetched == 2
    assert second.fetched == 1
    assert received == ["0", "1", "2"]


@pytest.mark.asyncio()
async def test_empty_store_schedules_idle_backoff(database, registry, dispatcher) -> None:
    relay = make_relay(database, registry, dispatcher, poll_interval=10.0, idle_backoff_multiplier=3.0)

    result = await relay.poll_once()

    assert result.fetched == 0
    assert result.delay == 30.0
    assert result.delay == relay.idle_interval


@pytest.mark.asyncio()
async def test_non_empty_batch_schedules_normal_interval(database, registry, dispatcher) -> None:
    await stage(database, OrderCancelled(order_id="1"))
    relay = make_relay(database, registry, dispatcher, poll_interval=10.0)

    result = await relay.poll_once()

    assert result.delay == 10.0


@pytest.mark.asyncio()
async def test_unknown_type_is_recorded_as_failure(database, registry, dispatcher) -> None:
    record = NewOutboxEvent(
        id=uuid4(),
        type_key="Ghost",
        payload="{}",
        created_at=datetime.now(timezone.utc),
    )
    await insert(database, record)
    relay = make_relay(database, registry, dispatcher)

    result = await relay.poll_once()

    assert result.failed == 1
    stored = await load(database, record.id)
    assert stored.processed is False
    assert stored.retry_count == 1
    assert "UnknownEventTypeError" in stored.last_error


@pytest.mark.asyncio()
async def test_undecodable_payload_is_recorded_as_failure(database, registry, dispatcher) -> None:
    record = NewOutboxEvent(
        id=uuid4(),
        type_key="OrderCreated",
        payload='{"unexpected": true}',
        created_at=datetime.now(timezone.utc),
    )
    await insert(database, record)
    relay = make_relay(database, registry, dispatcher)

    await relay.poll_once()

    stored = await load(database, record.id)
    assert stored.retry_count == 1
    assert "EventDeserializationError" in stored.last_error


@pytest.mark.asyncio()
async def test_retry_cap_moves_record_to_dead_letters(database, registry, dispatcher) -> None:
    handler = FlakyHandler(failures=5)
    dispatcher.subscribe(OrderCreated, handler)
    (event_id,) = await stage(database, OrderCreated(order_id="9"))
    relay = make_relay(database, registry, dispatcher, max_retries=2)

    await relay.poll_once()
    await relay.poll_once()
    third = await relay.poll_once()

    assert third.fetched == 0
    assert len(handler.calls) == 2
    async with database.connection() as session:
        repo = OutboxRepository(session)
        dead = await repo.fetch_dead_letters(max_retries=2)
        stats = await repo.stats(max_retries=2)
    assert [record.id for record in dead] == [event_id]
    assert stats.dead == 1
    assert stats.pending == 0

    async with database.connection() as session:
        requeued = await OutboxRepository(session).requeue(event_id)
    assert requeued.retry_count is None

    handler.failures = 0
    await relay.poll_once()
    record = await load(database, event_id)
    assert record.processed is True


@pytest.mark.asyncio()
async def test_store_error_backs_off_instead_of_crashing(tmp_path, registry, dispatcher) -> None:
    broken = Database(f"sqlite+aiosqlite:///{tmp_path / 'missing_tables.db'}")
    relay = make_relay(broken, registry, dispatcher, poll_interval=10.0, error_backoff_multiplier=6.0)

    try:
        result = await relay.poll_once()
    finally:
        await broken.dispose()

    assert result.fetched == 0
    assert result.delay == relay.error_interval == 60.0


@pytest.mark.asyncio()
async def test_run_forever_delivers_and_stops_on_signal(database, registry, dispatcher) -> None:
    delivered = asyncio.Event()

    async def handler(event: OrderCreated) -> None:
        delivered.set()

    dispatcher.subscribe(OrderCreated, handler)
    (event_id,) = await stage(database, OrderCreated(order_id="42"))
    relay = make_relay(database, registry, dispatcher, poll_interval=0.01)

    relay.start()
    await asyncio.wait_for(delivered.wait(), timeout=5)
    await asyncio.wait_for(relay.stop(), timeout=5)

    assert relay.state == RelayState.STOPPED
    record = await load(database, event_id)
    assert record.processed is True


@pytest.mark.asyncio()
async def test_stop_is_honoured_during_long_sleep(database, registry, dispatcher) -> None:
    relay = make_relay(database, registry, dispatcher, poll_interval=3600.0)

    relay.start()
    await asyncio.sleep(0.05)
    await asyncio.wait_for(relay.stop(), timeout=5)

    assert relay.state == RelayState.STOPPED


@pytest.mark.asyncio()
async def test_events_of_one_commit_are_relayed_in_raise_order(
    database, registry, dispatcher
) -> None:
    async with database.connection() as session:
        order = OrderModel.place("dave", Decimal("1.00"))
        order.cancel()
        session.add(order)
        await session.commit()

    received: list[str] = []
    dispatcher.subscribe(OrderCreated, lambda event: received.append("created"))
    dispatcher.subscribe(OrderCancelled, lambda event: received.append("cancelled"))
    relay = make_relay(database, registry, dispatcher)

    result = await relay.poll_once()

    assert result.succeeded == 2
    assert received == ["created", "cancelled"]
    async with database.connection() as session:
        rows = (await session.execute(OutboxModel.__table__.select())).all()
    assert len({row.created_at for row in rows}) == 2


@pytest.mark.asyncio()
async def test_stop_mid_batch_finishes_current_record_and_leaves_the_rest(
    database, registry, dispatcher
) -> None:
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    event_ids = []
    for index in range(3):
        event_ids += await stage(
            database,
            OrderCreated(order_id=str(index)),
            created_at=base + timedelta(seconds=index),
        )
    relay = make_relay(database, registry, dispatcher)
    received: list[str] = []

    def handler(event: OrderCreated) -> None:
        received.append(event.order_id)
        relay.request_stop()

    dispatcher.subscribe(OrderCreated, handler)

    result = await relay.poll_once()

    assert result.fetched == 3
    assert result.succeeded == 1
    assert result.failed == 0
    assert received == ["0"]
    first = await load(database, event_ids[0])
    assert first.processed is True
    for event_id in event_ids[1:]:
        record = await load(database, event_id)
        assert record.processed is False
        assert record.retry_count is None
        assert record.processed_at is None


@pytest.mark.asyncio()
async def test_dispatch_failure_keeps_handler_errors(database, registry, dispatcher) -> None:
    def first(event: OrderCreated) -> None:
        raise RuntimeError("smtp down")

    def second(event: OrderCreated) -> None:
        raise ValueError("bad address")

    dispatcher.subscribe(OrderCreated, first)
    dispatcher.subscribe(OrderCreated, second)
    (event_id,) = await stage(database, OrderCreated(order_id="5"))
    relay = make_relay(database, registry, dispatcher)

    await relay.poll_once()

    record = await load(database, event_id)
    assert record.last_error.startswith("EventDispatchError: ")
    assert "smtp down" in record.last_error
    assert "bad address" in record.last_error


@pytest.mark.asyncio()
async def test_requeue_does_not_reopen_processed_record(database, registry, dispatcher) -> None:
    received: list[OrderCreated] = []
    dispatcher.subscribe(OrderCreated, received.append)
    (event_id,) = await stage(database, OrderCreated(order_id="8"))
    relay = make_relay(database, registry, dispatcher)
    await relay.poll_once()

    async with database.connection() as session:
        requeued = await OutboxRepository(session).requeue(event_id)

    assert requeued.processed is True
    again = await relay.poll_once()
    assert again.fetched == 0
    assert len(received) == 1


class ClosingPublisher:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class DisposableDatabase:
    def __init__(self) -> None:
        self.disposed = False

    async def dispose(self) -> None:
        self.disposed = True


@pytest.mark.asyncio()
async def test_shutdown_closes_publisher_and_database() -> None:
    publisher = ClosingPublisher()
    db = DisposableDatabase()
    container = SimpleNamespace(
        messaging=SimpleNamespace(publisher=lambda: publisher),
        infrastructure=SimpleNamespace(db=lambda: db),
    )

    await shutdown(container)

    assert publisher.closed is True
    assert db.disposed is True


@pytest.mark.asyncio()
async def test_shutdown_without_publisher_still_disposes_database() -> None:
    db = DisposableDatabase()
    container = SimpleNamespace(
        messaging=SimpleNamespace(publisher=lambda: None),
        infrastructure=SimpleNamespace(db=lambda: db),
    )

    await shutdown(container)

    assert db.disposed is True
