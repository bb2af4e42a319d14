import fastapi

from outbox_service.api.handlers.orders.order_handler import router as order_router
from outbox_service.api.handlers.outbox.outbox_handler import router as outbox_router
from outbox_service.container import Container
from outbox_service.settings import settings


def create_container() -> Container:
    container = Container()
    container.config.from_pydantic(settings)
    return container


def create_app() -> fastapi.FastAPI:
    app = fastapi.FastAPI()
    app.container = create_container()
    app.include_router(order_router)
    app.include_router(outbox_router)
    return app


app = create_app()
