"""
Перехват доменных событий в момент commit и запись их в outbox.

Хуки вешаются на OutboxSession (sync_session_class асинхронной сессии):
before_flush и before_commit кладут строки outbox в ту же транзакцию,
after_commit и after_rollback ведут список уже зафиксированных событий
для fast path.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from pydantic_core import PydanticSerializationError
from sqlalchemy import event
from sqlalchemy.orm import Session

from outbox_service.entity.events import has_domain_events
from outbox_service.entity.outbox import CapturedEvent, NewOutboxEvent
from outbox_service.exceptions import EventCaptureError
from outbox_service.logger import logger

STAGED_KEY = "outbox_staged_events"
COMMITTED_KEY = "outbox_committed_events"

_STAMP_STEP = timedelta(microseconds=1)
_last_stamp: Optional[datetime] = None


class OutboxSession(Session):
    """
    Сессия, которая при commit переносит события сущностей в outbox.
    """


def _next_stamp() -> datetime:
    # created_at строго растёт, иначе порядок событий одного commit не определён
    global _last_stamp
    stamp = datetime.now(timezone.utc)
    if _last_stamp is not None and stamp <= _last_stamp:
        stamp = _last_stamp + _STAMP_STEP
    _last_stamp = stamp
    return stamp


def capture_events(
    entities: Iterable[Any],
    *,
    now: Optional[datetime] = None,
) -> List[CapturedEvent]:
    """
    Забирает события с сущностей и превращает каждое в запись outbox.

    События снимаются с сущности сразу, поэтому повторный вызов ничего не
    вернёт. Ошибка сериализации прерывает весь захват. Каждая запись
    получает свой возрастающий created_at; при заданном now отсчёт идёт от него.
    """
    captured: List[CapturedEvent] = []
    for entity in entities:
        if not has_domain_events(entity):
            continue
        events = list(entity.domain_events)
        entity.clear_domain_events()
        for domain_event in events:
            type_key = domain_event.event_key()
            try:
                payload = domain_event.to_payload()
            except (PydanticSerializationError, TypeError, ValueError) as exc:
                raise EventCaptureError(type_key=type_key) from exc
            captured.append(
                CapturedEvent(
                    record=NewOutboxEvent(
                        id=uuid.uuid4(),
                        type_key=type_key,
                        payload=payload,
                        created_at=(
                            now + _STAMP_STEP * len(captured) if now else _next_stamp()
                        ),
                    ),
                    event=domain_event,
                )
            )
    return captured


def _participants(session: Session) -> List[Any]:
    seen: set[int] = set()
    entities: List[Any] = []
    for entity in [*session.new, *session.identity_map.values()]:
        if id(entity) not in seen:
            seen.add(id(entity))
            entities.append(entity)
    return entities


@event.listens_for(OutboxSession, "before_flush")
def _capture_on_flush(session: Session, flush_context: Any, instances: Any) -> None:
    # после flush неизменённая сущность держится в identity map слабой ссылкой
    _stage_outbox_rows(session)


@event.listens_for(OutboxSession, "before_commit")
def _capture_on_commit(session: Session) -> None:
    _stage_outbox_rows(session)


def _stage_outbox_rows(session: Session) -> None:
    from outbox_service.infrastructure.persistence.db.schema import Outbox

    captured = capture_events(_participants(session))
    if not captured:
        return

    session.add_all(Outbox.from_record(item.record) for item in captured)
    session.info.setdefault(STAGED_KEY, []).extend(captured)
    logger.debug(
        "Captured %s domain events into outbox",
        len(captured),
        extra={"type_keys": [item.record.type_key for item in captured]},
    )


@event.listens_for(OutboxSession, "after_commit")
def _promote_committed(session: Session) -> None:
    staged = session.info.pop(STAGED_KEY, [])
    if staged:
        session.info.setdefault(COMMITTED_KEY, []).extend(staged)


@event.listens_for(OutboxSession, "after_rollback")
def _discard_staged(session: Session) -> None:
    session.info.pop(STAGED_KEY, None)


def pop_committed(session: Any) -> List[CapturedEvent]:
    """
    Забирает события, чьи записи outbox уже зафиксированы.
    """
    return session.info.pop(COMMITTED_KEY, [])
