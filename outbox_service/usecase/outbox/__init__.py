from outbox_service.usecase.outbox.outbox_usecase import OutboxUseCase

__all__ = ["OutboxUseCase"]
