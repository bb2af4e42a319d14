"""
Реестр типов событий: ключ из outbox -> класс события.

Заполняется явно при старте, до запуска релея.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Type

from pydantic import ValidationError

from outbox_service.entity.events import DomainEvent
from outbox_service.entity.orders import OrderCancelled, OrderCreated
from outbox_service.exceptions import (EventDeserializationError,
                                       EventTypeConflictError,
                                       UnknownEventTypeError)


class EventTypeRegistry:

    def __init__(self) -> None:
        self._types: Dict[str, Type[DomainEvent]] = {}

    def register(
        self,
        event_cls: Type[DomainEvent],
        type_key: Optional[str] = None,
    ) -> Type[DomainEvent]:
        key = type_key or event_cls.event_key()
        registered = self._types.get(key)
        if registered is not None and registered is not event_cls:
            raise EventTypeConflictError(type_key=key)
        self._types[key] = event_cls
        return event_cls

    def resolve(self, type_key: str) -> Type[DomainEvent]:
        try:
            return self._types[type_key]
        except KeyError:
            raise UnknownEventTypeError(type_key=type_key) from None

    def deserialize(self, type_key: str, payload: str) -> DomainEvent:
        event_cls = self.resolve(type_key)
        try:
            return event_cls.model_validate_json(payload)
        except ValidationError as exc:
            raise EventDeserializationError(type_key=type_key) from exc

    def registered_keys(self) -> List[str]:
        return sorted(self._types)

    def __contains__(self, type_key: object) -> bool:
        return type_key in self._types


def build_registry() -> EventTypeRegistry:
    registry = EventTypeRegistry()
    registry.register(OrderCreated)
    registry.register(OrderCancelled)
    return registry
