from __future__ import annotations

from uuid import UUID

from outbox_service.entity.orders import CreateOrder, Order, OrderStatus
from outbox_service.exceptions import OrderCancellationError, OrderNotFoundError
from outbox_service.infrastructure.persistence.repositories.orders import OrderRepository
from outbox_service.infrastructure.persistence.uow import UnitOfWork


class OrderUseCase:
    """
    Операции с заказами. Запись заказа и его событий идёт одной транзакцией.
    """

    def __init__(self, repository: OrderRepository, uow: UnitOfWork) -> None:
        """
        Хранит зависимости репозитория
        """
        self._repository = repository
        self._uow = uow

    async def create_order(self, payload: CreateOrder) -> Order:
        """
        Создаёт заказ; OrderCreated попадает в outbox вместе с ним.
        """
        async with self._uow.init() as repositories:
            return await repositories.orders.create_order(payload)

    async def get_order(self, order_id: UUID) -> Order:
        """
        Получает заказ если он существует
        """
        order = await self._repository.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id=order_id)
        return order

    async def cancel_order(self, order_id: UUID) -> Order:
        """
        Отменяет заказ
        """
        async with self._uow.init() as repositories:
            order = await repositories.orders.get_order(order_id)
            if order is None:
                raise OrderNotFoundError(order_id=order_id)
            if order.status == OrderStatus.CANCELLED:
                raise OrderCancellationError(order_id=order_id, status=order.status)

            cancelled = await repositories.orders.cancel_order(order_id)
            if cancelled is None:
                raise OrderNotFoundError(order_id=order_id)
            return cancelled
