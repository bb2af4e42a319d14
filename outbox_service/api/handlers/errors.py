from typing import NoReturn

from fastapi import HTTPException, status

from outbox_service.exceptions import (AppError, EventError, MessagingError,
                                       OrderCancellationError,
                                       OrderNotFoundError,
                                       OutboxEventNotFoundError,
                                       RepositoryError)
from outbox_service.logger import logger


def _map_app_error_to_http(exc: AppError) -> tuple[int, str]:
    if isinstance(exc, OrderNotFoundError):
        return status.HTTP_404_NOT_FOUND, "Order not found"
    if isinstance(exc, OutboxEventNotFoundError):
        return status.HTTP_404_NOT_FOUND, "Outbox event not found"
    if isinstance(exc, OrderCancellationError):
        return status.HTTP_400_BAD_REQUEST, "Order cannot be cancelled"
    if isinstance(exc, (MessagingError, EventError)):
        return status.HTTP_500_INTERNAL_SERVER_ERROR, "Messaging error"
    if isinstance(exc, RepositoryError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error"
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"


def raise_http_from_app_error(operation: str, exc: AppError) -> NoReturn:
    status_code, detail = _map_app_error_to_http(exc)

    log_extra = {
        "error_type": type(exc).__name__,
        **getattr(exc, "context", {}),
    }

    message = "Application error in %s: %s"

    if 400 <= status_code < 500:
        logger.warning(message, operation, str(exc), extra=log_extra)
    else:
        # 5xx и все остальные - ошибки сервера
        logger.error(message, operation, str(exc), extra=log_extra)

    raise HTTPException(status_code=status_code, detail=detail) from exc
