"""Shared utilities for the Vetrina services."""

from .config import DEFAULT_APP_NAME, ServiceSettings, get_settings
from .instrumentation import build_app, instrument_app
from .logging import configure_logging
from .tracing import configure_client_tracing, configure_tracing
from .database import (
    create_engine,
    create_schema,
    dispose_engines,
    get_session_factory,
    lifespan_session,
    resolve_database_url,
)
from .cache import close_redis_connections, get_redis_client, resolve_redis
from .bus import EventConsumer, EventProducer
from .errors import error_response, install_error_handlers
from .session import get_current_user_id, parse_user_id

__all__ = [
    "ServiceSettings",
    "get_settings",
    "build_app",
    "instrument_app",
    "configure_logging",
    "configure_tracing",
    "configure_client_tracing",
    "DEFAULT_APP_NAME",
    "create_engine",
    "create_schema",
    "dispose_engines",
    "get_session_factory",
    "lifespan_session",
    "resolve_database_url",
    "get_redis_client",
    "resolve_redis",
    "close_redis_connections",
    "EventProducer",
    "EventConsumer",
    "error_response",
    "install_error_handlers",
    "get_current_user_id",
    "parse_user_id",
]
