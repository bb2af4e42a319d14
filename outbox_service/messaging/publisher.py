from __future__ import annotations

import asyncio
import contextlib

import aio_pika
from aio_pika import DeliveryMode
from aio_pika.abc import AbstractChannel, AbstractRobustConnection
from aio_pika.exceptions import DeliveryError

from outbox_service.entity.events import DomainEvent
from outbox_service.exceptions import EventPublishError
from outbox_service.logger import logger


def get_rabbitmq_url(
    rabbit_user: str,
    rabbit_pass: str,
    rabbit_host: str,
    rabbit_port: int,
    rabbit_vhost: str,
) -> str:
    return f"amqp://{rabbit_user}:{rabbit_pass}@{rabbit_host}:{rabbit_port}{rabbit_vhost}"


class RabbitEventPublisher:
    """
    Обработчик-публикатор: отправляет каждое событие в очередь RabbitMQ.
    """

    def __init__(self, url: str, queue_name: str) -> None:
        self._url = url
        self._queue_name = queue_name
        self._connection: AbstractRobustConnection | None = None
        self._channel: AbstractChannel | None = None
        self._queue_declared = False
        self._setup_lock = asyncio.Lock()

    async def __call__(self, event: DomainEvent) -> None:
        await self.publish(event)

    async def publish(self, event: DomainEvent) -> None:
        type_key = event.event_key()
        channel = await self._ensure_channel()
        await self._ensure_queue(channel)
        try:
            await channel.default_exchange.publish(
                aio_pika.Message(
                    body=event.to_payload().encode(),
                    content_type="application/json",
                    delivery_mode=DeliveryMode.PERSISTENT,
                    headers={"event_type": type_key},
                ),
                routing_key=self._queue_name,
            )
        except (DeliveryError, aio_pika.AMQPException) as exc:
            logger.exception("Failed to publish event %s to RabbitMQ", type_key)
            await self._reset_connection()
            raise EventPublishError(event_type=type_key) from exc

    async def close(self) -> None:
        await self._reset_connection()

    async def _ensure_channel(self) -> AbstractChannel:
        if self._channel and not self._channel.is_closed:
            return self._channel

        async with self._setup_lock:
            if self._connection is None or self._connection.is_closed:
                try:
                    self._connection = await aio_pika.connect_robust(self._url)
                except (aio_pika.AMQPException, OSError) as exc:
                    logger.error("Failed to connect to RabbitMQ: %s", exc)
                    raise EventPublishError(event_type="connection") from exc

            if self._channel is None or self._channel.is_closed:
                self._channel = await self._connection.channel(publisher_confirms=True)
                self._queue_declared = False

            return self._channel

    async def _ensure_queue(self, channel: AbstractChannel) -> None:
        if self._queue_declared:
            return

        async with self._setup_lock:
            if self._queue_declared:
                return
            await channel.declare_queue(self._queue_name, durable=True)
            self._queue_declared = True

    async def _reset_connection(self) -> None:
        async with self._setup_lock:
            if self._channel is not None:
                with contextlib.suppress(Exception):
                    await self._channel.close()
            if self._connection is not None:
                with contextlib.suppress(Exception):
                    await self._connection.close()
            self._channel = None
            self._connection = None
            self._queue_declared = False
