"""
Подключение к БД: движок, фабрика сессий и декларативная база ORM.
"""

import contextlib
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (AsyncSession, async_sessionmaker,
                                    create_async_engine)
from sqlalchemy.orm import DeclarativeBase

from outbox_service.infrastructure.persistence.capture import OutboxSession


class Base(DeclarativeBase):
    pass


class Database:

    def __init__(self, db_url: str, *, echo: bool = False) -> None:
        self._engine = create_async_engine(db_url, echo=echo)
        self.session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            sync_session_class=OutboxSession,
            expire_on_commit=False,
        )

    @contextlib.asynccontextmanager
    async def connection(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Сессия на время блока; закрывается в любом случае.
        """
        async with self.session_factory() as session:
            yield session

    async def create_all(self) -> None:
        # импорт регистрирует таблицы в metadata
        from outbox_service.infrastructure.persistence.db import schema  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()
