"""
Корневой контейнер, который подключает все подконтейнеры.
"""

from dependency_injector import containers, providers

from outbox_service.infrastructure.container import InfrastructureContainer
from outbox_service.messaging.container import MessagingContainer
from outbox_service.messaging.relay import OutboxRelay
from outbox_service.usecase.container import UsecaseContainer


class Container(containers.DeclarativeContainer):

    config = providers.Configuration()
    wiring_config = containers.WiringConfiguration(
        modules=[
            "outbox_service.api.handlers.orders.order_handler",
            "outbox_service.api.handlers.outbox.outbox_handler",
        ],
    )

    messaging = providers.Container(
        MessagingContainer,
        config=config,
    )

    infrastructure = providers.Container(
        InfrastructureContainer,
        config=config,
        dispatcher=messaging.dispatcher,
    )

    usecase = providers.Container(
        UsecaseContainer,
        config=config,
        order_repository=infrastructure.order_repository,
        uow=infrastructure.uow,
    )

    relay = providers.Singleton(
        OutboxRelay,
        db=infrastructure.db,
        registry=messaging.registry,
        dispatcher=messaging.dispatcher,
        batch_size=config.OUTBOX_BATCH_SIZE,
        poll_interval=config.OUTBOX_POLL_INTERVAL,
        idle_backoff_multiplier=config.OUTBOX_IDLE_BACKOFF_MULTIPLIER,
        error_backoff_multiplier=config.OUTBOX_ERROR_BACKOFF_MULTIPLIER,
        max_retries=config.OUTBOX_MAX_RETRIES,
    )
