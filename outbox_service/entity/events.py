"""
Доменные события и примесь для агрегатов, которые их порождают.
"""

from __future__ import annotations

from typing import Any, ClassVar, List, Tuple

from pydantic import BaseModel, ConfigDict


class DomainEvent(BaseModel):
    """
    Событие, поднятое бизнес-логикой внутри одной единицы работы.

    Живёт только в памяти до commit: затем превращается в запись outbox
    и доставляется обработчикам уже релеем.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type_key: ClassVar[str] = ""

    @classmethod
    def event_key(cls) -> str:
        return cls.__dict__.get("type_key") or cls.__name__

    def to_payload(self) -> str:
        return self.model_dump_json(by_alias=True)


class EventRaiser:
    """
    Примесь для сущностей, которые копят события до сохранения.

    Список хранится прямо в __dict__ экземпляра, поэтому работает и для
    ORM-моделей, загруженных из БД в обход __init__.
    """

    def _pending_events(self) -> List[DomainEvent]:
        return vars(self).setdefault("_domain_events", [])

    def raise_event(self, event: DomainEvent) -> None:
        self._pending_events().append(event)

    @property
    def domain_events(self) -> Tuple[DomainEvent, ...]:
        return tuple(self._pending_events())

    def clear_domain_events(self) -> None:
        self._pending_events().clear()


def has_domain_events(entity: Any) -> bool:
    return isinstance(entity, EventRaiser) and bool(entity.domain_events)
