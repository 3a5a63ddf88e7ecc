from contextlib import asynccontextmanager

from fastapi import FastAPI

from vetrina.common import (
    DEFAULT_APP_NAME,
    EventProducer,
    ServiceSettings,
    build_app,
    configure_logging,
    create_schema,
    dispose_engines,
    get_session_factory,
    get_settings,
    resolve_database_url,
)

from .api.brands import router as brands_router
from .api.catalogs import router as catalogs_router
from .api.health import router as health_router
from .api.order_products import router as order_products_router
from .api.orders import router as orders_router
from .api.products import router as products_router
from .api.size_groups import router as size_groups_router
from .api.sizes import router as sizes_router
from .events import OrderingEventPublisher
from .models import Base

SERVICE_NAME = "Ordering Service"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./ordering_service.db"


def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    """Create the Ordering Service FastAPI application."""

    resolved_settings = settings or get_settings()
    if resolved_settings.app_name == DEFAULT_APP_NAME:
        resolved_settings = resolved_settings.model_copy(update={"app_name": SERVICE_NAME})
    configure_logging(resolved_settings)
    database_url = resolve_database_url(resolved_settings, DEFAULT_DATABASE_URL)
    session_factory = get_session_factory(database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        producer: EventProducer | None = None
        app.state.session_factory = session_factory
        try:
            if database_url.startswith("sqlite"):
                await create_schema(database_url, Base.metadata)
            producer = EventProducer(source=resolved_settings.app_name)
            await producer.connect()
            app.state.event_producer = producer
            app.state.event_publisher = OrderingEventPublisher(producer)
            yield
        finally:
            app.state.session_factory = None  # type: ignore[assignment]
            app.state.event_producer = None
            app.state.event_publisher = None
            if producer is not None:
                await producer.close()
            await dispose_engines()

    app = build_app(resolved_settings, lifespan=lifespan)
    app.include_router(health_router)
    app.include_router(brands_router)
    app.include_router(sizes_router)
    app.include_router(size_groups_router)
    app.include_router(products_router)
    app.include_router(catalogs_router)
    app.include_router(orders_router)
    app.include_router(order_products_router)
    return app


app = create_app()
