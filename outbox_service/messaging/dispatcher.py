from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, Union

from outbox_service.entity.events import DomainEvent
from outbox_service.exceptions import EventDispatchError
from outbox_service.logger import logger

EventHandler = Callable[[Any], Union[Awaitable[None], None]]


class EventDispatcher:
    """
    Доставляет событие всем обработчикам, подписанным на его тип.

    Обработчики ищутся по MRO класса события, так что подписка на
    DomainEvent получает все события. Если хотя бы один обработчик упал,
    поднимается EventDispatchError и событие повторяется целиком.
    """

    def __init__(self, *, handler_timeout: Optional[float] = None) -> None:
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = defaultdict(list)
        self._handler_timeout = handler_timeout

    def subscribe(self, event_cls: Type[DomainEvent], handler: EventHandler) -> None:
        if handler not in self._handlers[event_cls]:
            self._handlers[event_cls].append(handler)

    def handles(self, event_cls: Type[DomainEvent]) -> Callable[[EventHandler], EventHandler]:
        def decorator(handler: EventHandler) -> EventHandler:
            self.subscribe(event_cls, handler)
            return handler

        return decorator

    def handlers_for(self, event_cls: Type[DomainEvent]) -> List[EventHandler]:
        handlers: List[EventHandler] = []
        for klass in event_cls.__mro__:
            handlers.extend(self._handlers.get(klass, ()))
        return handlers

    async def dispatch(self, event: DomainEvent) -> None:
        errors: List[BaseException] = []
        for handler in self.handlers_for(type(event)):
            try:
                await self._invoke(handler, event)
            except Exception as exc:
                logger.warning(
                    "Event handler %s failed for %s: %s",
                    getattr(handler, "__qualname__", repr(handler)),
                    event.event_key(),
                    exc,
                )
                errors.append(exc)

        if errors:
            raise EventDispatchError(event_type=event.event_key(), errors=errors)

    async def _invoke(self, handler: EventHandler, event: DomainEvent) -> None:
        result = handler(event)
        if inspect.isawaitable(result):
            if self._handler_timeout is not None:
                await asyncio.wait_for(result, timeout=self._handler_timeout)
            else:
                await result
