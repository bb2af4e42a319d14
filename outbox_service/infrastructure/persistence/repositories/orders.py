from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from outbox_service.entity.orders import CreateOrder, Order, OrderId
from outbox_service.exceptions import RepositoryError
from outbox_service.infrastructure.persistence.db.schema import Order as OrderModel


class OrderRepository:
    """
    Сохранение заказов. События агрегата уходят в outbox при commit сессии.
    """

    def __init__(self, session: AsyncSession, *, auto_commit: bool = True) -> None:
        self._session: AsyncSession = session
        self._auto_commit = auto_commit

    async def create_order(self, payload: CreateOrder) -> Order:
        """
        Запись нового заказа в БД
        """
        try:
            db_order = OrderModel.place(payload.customer, payload.amount)
            self._session.add(db_order)
            await self._commit()
            return self._to_entity(db_order)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise RepositoryError("Failed to create order") from exc

    async def get_order(self, order_id: UUID) -> Optional[Order]:
        """
        Возвращает заказ по UUID или не возвращает, если он отсутствует.
        """
        try:
            db_order = await self._get_model(order_id)
            return self._to_entity(db_order) if db_order else None
        except SQLAlchemyError as exc:
            raise RepositoryError("Failed to get order") from exc

    async def cancel_order(self, order_id: UUID) -> Optional[Order]:
        """
        Отмена заказа
        """
        try:
            db_order = await self._get_model(order_id)
            if db_order is None:
                return None

            db_order.cancel()
            await self._commit()
            return self._to_entity(db_order)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise RepositoryError("Failed to cancel order") from exc

    async def _get_model(self, order_id: UUID) -> Optional[OrderModel]:
        stmt: Select[OrderModel] = select(OrderModel).where(OrderModel.id == order_id)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    @staticmethod
    def _to_entity(order: OrderModel) -> Order:
        """
        Преобразование модели ORM в объект entity.
        """
        return Order(
            id=OrderId(order.id),
            customer=order.customer,
            amount=order.amount,
            status=order.status,
            created_at=order.created_at,
        )

    async def _commit(self) -> None:
        if self._auto_commit:
            await self._session.commit()
        else:
            await self._session.flush()
