from outbox_service.usecase.orders.order_usecase import OrderUseCase

__all__ = ["OrderUseCase"]
