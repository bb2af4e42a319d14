import contextlib
import dataclasses
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import List, Optional

from outbox_service.entity.outbox import CapturedEvent
from outbox_service.exceptions import AppError, UnitOfWorkError
from outbox_service.infrastructure.persistence.capture import pop_committed
from outbox_service.infrastructure.persistence.db import Database
from outbox_service.infrastructure.persistence.repositories.orders import OrderRepository
from outbox_service.infrastructure.persistence.repositories.outbox import OutboxRepository
from outbox_service.logger import logger
from outbox_service.messaging.dispatcher import EventDispatcher


@dataclasses.dataclass
class Repository:
    """
    repo доступные для UOW
    """

    orders: OrderRepository
    outbox: OutboxRepository


class UnitOfWork:
    """
    Обработка жизненного цикла для commit/rollback логики.

    События агрегатов попадают в outbox той же транзакцией. При включённом
    fast path после успешного commit они сразу доставляются в этом процессе;
    релей остаётся страховкой на случай падения между commit и доставкой.
    """

    def __init__(
        self,
        db: Database,
        dispatcher: Optional[EventDispatcher] = None,
        *,
        fast_path: bool = False,
    ) -> None:
        self.db: Database = db
        self._dispatcher = dispatcher
        self._fast_path = fast_path and dispatcher is not None

    @contextlib.asynccontextmanager
    async def init(self) -> AsyncGenerator[Repository, None]:
        async with self.db.connection() as conn:
            try:
                yield Repository(
                    orders=OrderRepository(conn, auto_commit=False),
                    outbox=OutboxRepository(conn, auto_commit=False),
                )
                await conn.commit()
            except AppError:
                await conn.rollback()
                raise
            except Exception as exc:
                await conn.rollback()
                raise UnitOfWorkError("UnitOfWork transaction failed") from exc

            committed = pop_committed(conn)

        if self._fast_path and committed:
            await self._dispatch_committed(committed)

    async def _dispatch_committed(self, committed: List[CapturedEvent]) -> None:
        """
        Доставка только что зафиксированных событий без ожидания релея.

        Ошибки не выходят наружу: запись остаётся необработанной и её
        подберёт релей.
        """
        delivered: List[CapturedEvent] = []
        for item in committed:
            try:
                await self._dispatcher.dispatch(item.event)
            except Exception as exc:
                logger.warning(
                    "Fast-path dispatch failed for outbox event %s, left for relay: %s",
                    item.record.id,
                    exc,
                    extra={"type_key": item.record.type_key},
                )
                continue
            delivered.append(item)

        if not delivered:
            return

        try:
            async with self.db.connection() as session:
                outbox_repo = OutboxRepository(session, auto_commit=False)
                now = datetime.now(timezone.utc)
                for item in delivered:
                    await outbox_repo.mark_success(item.record.id, now)
                await session.commit()
        except Exception:
            logger.exception("Failed to mark fast-path events as processed")
