from contextlib import asynccontextmanager

from fastapi import FastAPI

from vetrina.common import (
    DEFAULT_APP_NAME,
    EventConsumer,
    ServiceSettings,
    build_app,
    close_redis_connections,
    configure_logging,
    create_schema,
    dispose_engines,
    get_session_factory,
    get_settings,
    resolve_database_url,
    resolve_redis,
)

from .api.health import router as health_router
from .api.notifications import router as notifications_router
from .channels import InMemoryRealtimeChannel, RealtimeChannel, RedisRealtimeChannel
from .event_handlers import TOPICS, NotificationEventHandler
from .models import Base

SERVICE_NAME = "Notification Service"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./notification_service.db"


def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    """Create the Notification Service FastAPI application."""

    resolved_settings = settings or get_settings()
    if resolved_settings.app_name == DEFAULT_APP_NAME:
        resolved_settings = resolved_settings.model_copy(update={"app_name": SERVICE_NAME})
    configure_logging(resolved_settings)
    database_url = resolve_database_url(resolved_settings, DEFAULT_DATABASE_URL)
    session_factory = get_session_factory(database_url)

    redis_client = resolve_redis(resolved_settings)
    channel: RealtimeChannel = (
        RedisRealtimeChannel(redis_client) if redis_client is not None else InMemoryRealtimeChannel()
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        event_consumer: EventConsumer | None = None
        app.state.session_factory = session_factory
        app.state.realtime_channel = channel
        try:
            if database_url.startswith("sqlite"):
                await create_schema(database_url, Base.metadata)
            event_handler = NotificationEventHandler(session_factory, channel=channel)
            event_consumer = EventConsumer(TOPICS, event_handler.handle)
            await event_consumer.start()
            app.state.notification_event_consumer = event_consumer
            app.state.notification_event_handler = event_handler
            yield
        finally:
            app.state.session_factory = None  # type: ignore[assignment]
            app.state.realtime_channel = None
            app.state.notification_event_consumer = None
            app.state.notification_event_handler = None
            if event_consumer is not None:
                await event_consumer.stop()
            await dispose_engines()
            if redis_client is not None:
                await close_redis_connections()

    app = build_app(resolved_settings, lifespan=lifespan)
    app.include_router(health_router)
    app.include_router(notifications_router)
    return app


app = create_app()
