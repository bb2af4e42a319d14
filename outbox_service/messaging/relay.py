from __future__ import annotations

import asyncio
import contextlib
import signal
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from outbox_service.entity.outbox import OutboxEvent
from outbox_service.exceptions import (EventDeserializationError,
                                       RepositoryError, UnknownEventTypeError)
from outbox_service.infrastructure.persistence.db import Database
from outbox_service.infrastructure.persistence.repositories.outbox import OutboxRepository
from outbox_service.logger import logger
from outbox_service.messaging.dispatcher import EventDispatcher
from outbox_service.messaging.registry import EventTypeRegistry


class RelayState(str, Enum):
    IDLE = "IDLE"
    POLLING = "POLLING"
    PROCESSING = "PROCESSING"
    SLEEPING = "SLEEPING"
    STOPPED = "STOPPED"


@dataclass(slots=True)
class _Outcome:
    event_id: UUID
    succeeded: bool
    timestamp: datetime
    error: Optional[str] = None


@dataclass(slots=True)
class PollResult:
    fetched: int
    succeeded: int
    failed: int
    delay: float
    errors: List[str] = field(default_factory=list)


class OutboxRelay:
    """
    Постоянно забирает необработанные события из outbox и доставляет их
    обработчикам через диспетчер.
    """

    def __init__(
        self,
        db: Database,
        registry: EventTypeRegistry,
        dispatcher: EventDispatcher,
        *,
        batch_size: int = 100,
        poll_interval: float = 10.0,
        idle_backoff_multiplier: float = 3.0,
        error_backoff_multiplier: float = 6.0,
        max_retries: Optional[int] = None,
    ) -> None:
        """
        Зависимости и конфигурация.
        """
        self._db = db
        self._registry = registry
        self._dispatcher = dispatcher
        self._batch_size = batch_size
        self._poll_interval = poll_interval
        self._idle_interval = poll_interval * idle_backoff_multiplier
        self._error_interval = poll_interval * error_backoff_multiplier
        self._max_retries = max_retries
        self._state = RelayState.IDLE
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def idle_interval(self) -> float:
        return self._idle_interval

    @property
    def error_interval(self) -> float:
        return self._error_interval

    def start(self) -> asyncio.Task[None]:
        """
        Запускает цикл фоновой задачей в текущем event loop.
        """
        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        """
        Сигнал остановки; текущая запись и сброс результатов доводятся до конца.
        """
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    def request_stop(self) -> None:
        self._stop_event.set()

    async def run_forever(self) -> None:
        """
        Цикл Polling -> Processing -> Sleeping до сигнала остановки.
        """
        logger.info(
            "Outbox relay started",
            extra={
                "batch_size": self._batch_size,
                "poll_interval": self._poll_interval,
                "max_retries": self._max_retries,
            },
        )
        try:
            while not self._stop_event.is_set():
                try:
                    delay = (await self.poll_once()).delay
                except Exception:
                    logger.exception("Error in outbox relay loop")
                    delay = self._error_interval
                if self._stop_event.is_set():
                    break
                self._state = RelayState.SLEEPING
                await self._sleep(delay)
        finally:
            self._state = RelayState.STOPPED
            logger.info("Outbox relay stopped")

    async def poll_once(self) -> PollResult:
        """
        Один цикл: выборка пачки, доставка, запись результатов одним flush.
        """
        self._state = RelayState.POLLING
        try:
            records = await self._fetch_batch()
        except RepositoryError:
            logger.exception("Failed to fetch outbox batch, backing off")
            return PollResult(fetched=0, succeeded=0, failed=0, delay=self._error_interval)

        if not records:
            return PollResult(fetched=0, succeeded=0, failed=0, delay=self._idle_interval)

        self._state = RelayState.PROCESSING
        logger.debug("Processing outbox batch", extra={"batch_size": len(records)})

        outcomes: List[_Outcome] = []
        for record in records:
            if self._stop_event.is_set():
                break
            outcomes.append(await self._process_record(record))

        try:
            await self._flush(outcomes)
        except RepositoryError:
            logger.exception("Failed to flush outbox outcomes, backing off")
            return PollResult(
                fetched=len(records),
                succeeded=0,
                failed=0,
                delay=self._error_interval,
            )

        succeeded = sum(1 for outcome in outcomes if outcome.succeeded)
        failed = len(outcomes) - succeeded
        if succeeded:
            logger.info(
                "Outbox batch processed",
                extra={"processed": succeeded, "failed": failed, "total": len(records)},
            )
        return PollResult(
            fetched=len(records),
            succeeded=succeeded,
            failed=failed,
            delay=self._poll_interval,
            errors=[outcome.error for outcome in outcomes if outcome.error],
        )

    async def _fetch_batch(self) -> List[OutboxEvent]:
        async with self._db.connection() as session:
            outbox_repo = OutboxRepository(session, auto_commit=False)
            return await outbox_repo.fetch_batch(
                self._batch_size,
                max_retries=self._max_retries,
            )

    async def _process_record(self, record: OutboxEvent) -> _Outcome:
        """
        Тип -> событие -> диспетчер. Любая ошибка превращается в неудачную попытку.
        """
        try:
            event = self._registry.deserialize(record.type_key, record.payload)
        except (UnknownEventTypeError, EventDeserializationError) as exc:
            logger.error(
                "Cannot materialize outbox event %s: %s",
                record.id,
                exc,
                extra={"type_key": record.type_key, "retry_count": record.retry_count},
            )
            return self._failure(record, exc)

        try:
            await self._dispatcher.dispatch(event)
        except Exception as exc:
            logger.warning(
                "Failed to dispatch outbox event %s: %s",
                record.id,
                exc,
                extra={
                    "type_key": record.type_key,
                    "retry_count": (record.retry_count or 0) + 1,
                },
            )
            return self._failure(record, exc)

        logger.debug(
            "Outbox event dispatched",
            extra={"event_id": str(record.id), "type_key": record.type_key},
        )
        return _Outcome(event_id=record.id, succeeded=True, timestamp=_utcnow())

    def _failure(self, record: OutboxEvent, exc: Exception) -> _Outcome:
        attempts = (record.retry_count or 0) + 1
        if self._max_retries is not None and attempts >= self._max_retries:
            logger.error(
                "Outbox event %s reached retry limit and is dead-lettered",
                record.id,
                extra={"type_key": record.type_key, "retry_count": attempts},
            )
        return _Outcome(
            event_id=record.id,
            succeeded=False,
            timestamp=_utcnow(),
            error=f"{type(exc).__name__}: {exc}",
        )

    async def _flush(self, outcomes: List[_Outcome]) -> None:
        if not outcomes:
            return
        async with self._db.connection() as session:
            outbox_repo = OutboxRepository(session, auto_commit=False)
            for outcome in outcomes:
                if outcome.succeeded:
                    await outbox_repo.mark_success(outcome.event_id, outcome.timestamp)
                else:
                    await outbox_repo.mark_failure(
                        outcome.event_id,
                        outcome.timestamp,
                        outcome.error,
                    )
            await self._commit(session)

    @staticmethod
    async def _commit(session: AsyncSession) -> None:
        try:
            await session.commit()
        except Exception as exc:
            await session.rollback()
            raise RepositoryError("Failed to commit outbox outcomes") from exc

    async def _sleep(self, delay: float) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def shutdown(container) -> None:
    """
    Закрывает соединение с RabbitMQ (если публикация включена) и пул БД.
    """
    publisher = container.messaging.publisher()
    try:
        if publisher is not None:
            await publisher.close()
    finally:
        await container.infrastructure.db().dispose()


async def main() -> None:
    """
    Запуск релея как отдельный автономный процесс.
    """
    from outbox_service.container import Container
    from outbox_service.settings import settings

    container = Container()
    container.config.from_pydantic(settings)

    relay: OutboxRelay = container.relay()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, relay.request_stop)

    try:
        await relay.run_forever()
    finally:
        await shutdown(container)


if __name__ == "__main__":
    asyncio.run(main())
