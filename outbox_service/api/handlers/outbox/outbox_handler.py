from uuid import UUID

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, status

from outbox_service.api.handlers.errors import raise_http_from_app_error
from outbox_service.api.schemas.requests_schemas.outbox.schemas import DeadLetterQuery
from outbox_service.api.schemas.response_schemas.schemas import (OutboxEventListResponse,
                                                                 OutboxEventResponse,
                                                                 OutboxStatsResponse)
from outbox_service.container import Container
from outbox_service.exceptions import AppError
from outbox_service.usecase.outbox import OutboxUseCase

router = APIRouter(
    prefix="/api/v1/outbox",
    tags=["Outbox"],
)


@router.get(
    "/stats",
    response_model=OutboxStatsResponse,
)
@inject
async def get_outbox_stats(
    uc: OutboxUseCase = Depends(Provide[Container.usecase.outbox_usecase]),
) -> OutboxStatsResponse:
    """
    Количество ожидающих, обработанных и dead-letter событий.
    """
    try:
        stats = await uc.get_stats()
    except AppError as exc:
        raise_http_from_app_error("get_outbox_stats", exc)

    return OutboxStatsResponse.from_entity(stats)


@router.get(
    "/dead-letters",
    response_model=OutboxEventListResponse,
)
@inject
async def list_dead_letters(
    uc: OutboxUseCase = Depends(Provide[Container.usecase.outbox_usecase]),
    query: DeadLetterQuery = Depends(DeadLetterQuery.as_query),
) -> OutboxEventListResponse:
    try:
        events = await uc.list_dead_letters(query.limit)
    except AppError as exc:
        raise_http_from_app_error("list_dead_letters", exc)

    return OutboxEventListResponse(
        total=len(events),
        items=[OutboxEventResponse.from_entity(event) for event in events],
    )


@router.post(
    "/{event_id}/requeue",
    response_model=OutboxEventResponse,
    status_code=status.HTTP_200_OK,
)
@inject
async def requeue_event(
    event_id: UUID,
    uc: OutboxUseCase = Depends(Provide[Container.usecase.outbox_usecase]),
) -> OutboxEventResponse:
    """
    Вернуть событие релею: счётчик попыток сбрасывается.
    :param event_id: UUID записи outbox.
    :param uc: Usecase с операторскими запросами.
    :return: OutboxEventResponse с обновлённой записью.
    """
    try:
        event = await uc.requeue(event_id)
    except AppError as exc:
        raise_http_from_app_error("requeue_event", exc)

    return OutboxEventResponse.from_entity(event)
