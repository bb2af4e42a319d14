from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import Select, and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from outbox_service.entity.outbox import OutboxEvent, OutboxStats
from outbox_service.exceptions import OutboxEventNotFoundError, RepositoryError
from outbox_service.infrastructure.persistence.db.schema import Outbox as OutboxModel

MAX_ERROR_LENGTH = 1000


class OutboxRepository:
    """
    Доступ к таблице outbox для релея и операторских запросов.
    """

    def __init__(self, session: AsyncSession, *, auto_commit: bool = True) -> None:
        self._session = session
        self._auto_commit = auto_commit

    async def fetch_batch(
        self,
        max_count: int,
        *,
        max_retries: int | None = None,
    ) -> List[OutboxEvent]:
        """
        Необработанные события в порядке создания, не больше max_count.

        При заданном max_retries исчерпавшие попытки записи не выбираются.
        """
        stmt: Select[OutboxModel] = (
            select(OutboxModel)
            .where(OutboxModel.processed.is_(False))
            .order_by(OutboxModel.created_at.asc())
            .limit(max_count)
        )
        if max_retries is not None:
            stmt = stmt.where(self._below_retry_cap(max_retries))
        try:
            rows = (await self._session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise RepositoryError("Failed to fetch outbox batch") from exc
        return [self._to_entity(row) for row in rows]

    async def get_event(self, event_id: UUID) -> Optional[OutboxEvent]:
        try:
            model = await self._session.get(OutboxModel, event_id)
        except SQLAlchemyError as exc:
            raise RepositoryError("Failed to get outbox event") from exc
        return self._to_entity(model) if model else None

    async def mark_success(self, event_id: UUID, timestamp: datetime) -> None:
        await self._update(
            event_id,
            processed=True,
            processed_at=timestamp,
            last_error=None,
        )

    async def mark_failure(
        self,
        event_id: UUID,
        timestamp: datetime,
        error: str | None = None,
    ) -> None:
        """
        Фиксирует неудачную попытку: счётчик растёт, событие остаётся в очереди.
        """
        await self._update(
            event_id,
            processed=False,
            processed_at=timestamp,
            retry_count=func.coalesce(OutboxModel.retry_count, 0) + 1,
            last_error=error[:MAX_ERROR_LENGTH] if error else None,
        )

    async def fetch_dead_letters(self, max_retries: int, limit: int = 100) -> List[OutboxEvent]:
        """
        Записи, исчерпавшие лимит попыток. Релей их больше не выбирает.
        """
        stmt: Select[OutboxModel] = (
            select(OutboxModel)
            .where(self._dead_letter_clause(max_retries))
            .order_by(OutboxModel.created_at.asc())
            .limit(limit)
        )
        try:
            rows = (await self._session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise RepositoryError("Failed to fetch dead letters") from exc
        return [self._to_entity(row) for row in rows]

    async def requeue(self, event_id: UUID) -> OutboxEvent:
        """
        Сбрасывает счётчик попыток, чтобы релей снова взял событие.

        Уже обработанная запись не меняется и повторно не доставляется.
        """
        await self._update(
            event_id,
            OutboxModel.processed.is_(False),
            retry_count=None,
            last_error=None,
        )
        event = await self.get_event(event_id)
        if event is None:
            raise OutboxEventNotFoundError(event_id=event_id)
        return event

    async def stats(self, max_retries: int | None = None) -> OutboxStats:
        pending = OutboxModel.processed.is_(False)
        if max_retries is not None:
            pending = and_(pending, self._below_retry_cap(max_retries))
        try:
            result = OutboxStats(
                pending=await self._count(pending),
                processed=await self._count(OutboxModel.processed.is_(True)),
                dead=(
                    await self._count(self._dead_letter_clause(max_retries))
                    if max_retries is not None
                    else 0
                ),
            )
        except SQLAlchemyError as exc:
            raise RepositoryError("Failed to collect outbox stats") from exc
        return result

    async def _count(self, clause) -> int:
        total = await self._session.scalar(
            select(func.count(OutboxModel.id)).where(clause)
        )
        return int(total or 0)

    async def _update(self, event_id: UUID, *clauses, **values) -> None:
        try:
            await self._session.execute(
                update(OutboxModel)
                .where(OutboxModel.id == event_id, *clauses)
                .values(**values)
            )
            await self._commit()
        except SQLAlchemyError as exc:
            raise RepositoryError("Failed to update outbox event") from exc

    @staticmethod
    def _below_retry_cap(max_retries: int):
        return or_(
            OutboxModel.retry_count.is_(None),
            OutboxModel.retry_count < max_retries,
        )

    @staticmethod
    def _dead_letter_clause(max_retries: int):
        return and_(
            OutboxModel.processed.is_(False),
            OutboxModel.retry_count >= max_retries,
        )

    async def _commit(self) -> None:
        if self._auto_commit:
            await self._session.commit()
        else:
            await self._session.flush()

    @staticmethod
    def _to_entity(model: OutboxModel) -> OutboxEvent:
        return OutboxEvent(
            id=model.id,
            type_key=model.type_key,
            payload=model.payload,
            created_at=model.created_at,
            processed=model.processed,
            processed_at=model.processed_at,
            retry_count=model.retry_count,
            last_error=model.last_error,
        )
