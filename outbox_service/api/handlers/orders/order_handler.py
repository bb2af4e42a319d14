from uuid import UUID

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, status

from outbox_service.api.handlers.errors import raise_http_from_app_error
from outbox_service.api.schemas.requests_schemas.orders.schemas import OrderCreateRequest
from outbox_service.api.schemas.response_schemas.schemas import OrderResponse
from outbox_service.container import Container
from outbox_service.entity.orders import CreateOrder
from outbox_service.exceptions import AppError
from outbox_service.usecase.orders import OrderUseCase

router = APIRouter(
    prefix="/api/v1",
    tags=["Orders"],
)


@router.post(
    "/orders/",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
)
@inject
async def create_order(
    body: OrderCreateRequest,
    uc: OrderUseCase = Depends(Provide[Container.usecase.order_usecase]),
) -> OrderResponse:
    """
    Endpoint создания заказа
    :param body: Тело запроса.
    :param uc: usecase с бизнес-логикой
    :return: OrderResponse
    """

    payload = CreateOrder(
        customer=body.customer,
        amount=body.amount,
    )
    try:
        order = await uc.create_order(payload)
    except AppError as exc:
        raise_http_from_app_error("create_order", exc)

    return OrderResponse.from_entity(order)


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
)
@inject
async def get_order(
    order_id: UUID,
    uc: OrderUseCase = Depends(Provide[Container.usecase.order_usecase]),
) -> OrderResponse:
    """
    Получить заказ по идентификатору.
    :param order_id: UUID заказа.
    :param uc: Usecase с бизнес-логикой.
    :return: OrderResponse по найденному заказу.
    """

    try:
        order = await uc.get_order(order_id)
    except AppError as exc:
        raise_http_from_app_error("get_order", exc)

    return OrderResponse.from_entity(order)


@router.delete(
    "/orders/{order_id}",
    response_model=OrderResponse,
)
@inject
async def cancel_order(
    order_id: UUID,
    uc: OrderUseCase = Depends(Provide[Container.usecase.order_usecase]),
) -> OrderResponse:
    """
    Отменить заказ, если это допустимо.
    :param order_id: UUID заказа.
    :param uc: Usecase с бизнес-логикой.
    :return: OrderResponse с обновлённым состоянием заказа.
    """

    try:
        cancelled = await uc.cancel_order(order_id)
    except AppError as exc:
        raise_http_from_app_error("cancel_order", exc)

    return OrderResponse.from_entity(cancelled)
