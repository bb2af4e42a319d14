"""
Контейнер для реестра событий, диспетчера и публикации в очередь
"""

from dependency_injector import containers, providers

from outbox_service.messaging.handlers import build_dispatcher
from outbox_service.messaging.publisher import RabbitEventPublisher, get_rabbitmq_url
from outbox_service.messaging.registry import build_registry


def build_publisher(enabled: bool, url: str, queue_name: str) -> RabbitEventPublisher | None:
    if not enabled:
        return None
    return RabbitEventPublisher(url=url, queue_name=queue_name)


class MessagingContainer(containers.DeclarativeContainer):
    config = providers.Configuration()

    registry = providers.Singleton(build_registry)

    publisher = providers.Singleton(
        build_publisher,
        enabled=config.RABBIT_ENABLED,
        url=providers.Callable(
            get_rabbitmq_url,
            rabbit_user=config.RABBIT_USER,
            rabbit_pass=config.RABBIT_PASS,
            rabbit_host=config.RABBIT_HOST,
            rabbit_port=config.RABBIT_PORT,
            rabbit_vhost=config.RABBIT_VHOST,
        ),
        queue_name=config.EVENTS_QUEUE_NAME,
    )

    dispatcher = providers.Singleton(
        build_dispatcher,
        handler_timeout=config.OUTBOX_HANDLER_TIMEOUT,
        publisher=publisher,
    )
