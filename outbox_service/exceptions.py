from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class AppError(Exception):
    """
    Исключение базового уровня приложения.

    Должно использоваться для всех ожидаемых, контролируемых сценариев ошибок в
    приложении.
    """
    def __init__(self, message: str = "", *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context or {}

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message or self.__class__.__name__


class RepositoryError(AppError):
    """
    Базовая класс ошибок для persistence/repository слоя.
    """


class UnitOfWorkError(AppError):
    """
    Ошибка для UOW при которой падает транзакция
    """


class MessagingError(AppError):
    """
    Базовый класс ошибок для messaging / RabbitMQ операций.
    """


class EventError(AppError):
    """
    Базовый класс ошибок доменных событий и outbox.
    """


@dataclass
class EventCaptureError(EventError):
    """
    Событие не удалось сериализовать в момент commit, транзакция отменяется.
    """

    type_key: str
    message: str = "Failed to capture domain event into the outbox"

    def __post_init__(self) -> None:
        self.context = {"type_key": self.type_key}


@dataclass
class UnknownEventTypeError(EventError):
    """
    Ключ типа из outbox не зарегистрирован в реестре.
    """

    type_key: str
    message: str = "Unknown event type"

    def __post_init__(self) -> None:
        self.context = {"type_key": self.type_key}


@dataclass
class EventDeserializationError(EventError):
    """
    Payload записи outbox не удалось восстановить в событие.
    """

    type_key: str
    message: str = "Failed to deserialize event payload"

    def __post_init__(self) -> None:
        self.context = {"type_key": self.type_key}


@dataclass
class EventTypeConflictError(EventError):
    """
    Один и тот же ключ типа регистрируется для разных классов.
    """

    type_key: str
    message: str = "Event type key is already registered for another class"

    def __post_init__(self) -> None:
        self.context = {"type_key": self.type_key}


@dataclass
class OutboxEventNotFoundError(EventError):

    event_id: Any
    message: str = "Outbox event not found"

    def __post_init__(self) -> None:
        self.context = {"event_id": str(self.event_id)}


@dataclass
class EventDispatchError(MessagingError):
    """
    Один или несколько обработчиков упали при доставке события.
    """

    event_type: str
    errors: List[BaseException] = field(default_factory=list)
    message: str = "One or more event handlers failed"

    def __post_init__(self) -> None:
        self.context = {
            "event_type": self.event_type,
            "errors": [repr(error) for error in self.errors],
        }

    def __str__(self) -> str:
        if not self.errors:
            return self.message
        return f"{self.message}: " + "; ".join(repr(error) for error in self.errors)


@dataclass
class EventPublishError(MessagingError):
    """
    Возникает, когда событие не может быть опубликовано в очереди.
    """

    event_type: Any
    message: str = "Failed to publish event to the message queue"

    def __post_init__(self) -> None:
        self.context = {"event_type": str(self.event_type)}


class OrderError(AppError):
    """
    Базовый класс ошибок для order-related операций.
    """


@dataclass
class OrderNotFoundError(OrderError):
    """
    Возникает, когда заказ с заданным UUID не существует.
    """

    order_id: Any
    message: str = "Order not found"

    def __post_init__(self) -> None:
        self.context = {"order_id": str(self.order_id)}


@dataclass
class OrderCancellationError(OrderError):

    order_id: Any
    status: Any
    message: str = "Order cannot be cancelled in the current status"

    def __post_init__(self) -> None:
        self.context = {
            "order_id": str(self.order_id),
            "status": str(self.status),
        }
