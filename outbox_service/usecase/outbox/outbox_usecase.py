from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from outbox_service.entity.outbox import OutboxEvent, OutboxStats
from outbox_service.infrastructure.persistence.uow import UnitOfWork


class OutboxUseCase:
    """
    Операторские запросы к outbox: статистика, dead letters, повторная постановка.
    """

    def __init__(self, uow: UnitOfWork, max_retries: Optional[int] = None) -> None:
        self._uow = uow
        self._max_retries = max_retries

    async def get_stats(self) -> OutboxStats:
        async with self._uow.init() as repositories:
            return await repositories.outbox.stats(self._max_retries)

    async def list_dead_letters(self, limit: int = 100) -> List[OutboxEvent]:
        if self._max_retries is None:
            return []
        async with self._uow.init() as repositories:
            return await repositories.outbox.fetch_dead_letters(self._max_retries, limit)

    async def requeue(self, event_id: UUID) -> OutboxEvent:
        async with self._uow.init() as repositories:
            return await repositories.outbox.requeue(event_id)
