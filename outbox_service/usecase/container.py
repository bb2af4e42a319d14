"""
Контейнер для usecase слоя
"""

from dependency_injector import containers, providers

from outbox_service.infrastructure.persistence.repositories.orders import OrderRepository
from outbox_service.infrastructure.persistence.uow import UnitOfWork
from outbox_service.usecase.orders import OrderUseCase
from outbox_service.usecase.outbox import OutboxUseCase


class UsecaseContainer(containers.DeclarativeContainer):

    config = providers.Configuration()
    order_repository: providers.Dependency[OrderRepository] = providers.Dependency()
    uow: providers.Dependency[UnitOfWork] = providers.Dependency()

    order_usecase = providers.Factory(
        OrderUseCase,
        repository=order_repository,
        uow=uow,
    )

    outbox_usecase = providers.Factory(
        OutboxUseCase,
        uow=uow,
        max_retries=config.OUTBOX_MAX_RETRIES,
    )
