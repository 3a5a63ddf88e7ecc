"""Wiring of the storefront stores from service settings."""

from __future__ import annotations

import httpx

from vetrina.common import ServiceSettings, configure_client_tracing, resolve_redis

from .client import NotificationClient, OrderingClient
from .drafts import DraftCache, InMemoryDraftStorage, RedisDraftStorage
from .editor import OrderEditor
from .notifications import NotificationBell, UnreadListener

DEFAULT_TIMEOUT_SECONDS = 10.0


def _http_client(settings: ServiceSettings, base_url: str | None, setting_name: str) -> httpx.AsyncClient:
    if not base_url:
        raise ValueError(f"{setting_name} is not configured")
    configure_client_tracing(settings)
    return httpx.AsyncClient(base_url=base_url, timeout=DEFAULT_TIMEOUT_SECONDS)


def build_draft_cache(settings: ServiceSettings) -> DraftCache:
    redis_client = resolve_redis(settings)
    storage = RedisDraftStorage(redis_client) if redis_client is not None else InMemoryDraftStorage()
    return DraftCache(storage, ttl_hours=settings.draft_ttl_hours)


def build_ordering_client(
    settings: ServiceSettings,
    *,
    user_id: int,
    http_client: httpx.AsyncClient | None = None,
) -> OrderingClient:
    if http_client is None:
        http_client = _http_client(settings, settings.ordering_service_url, "ordering_service_url")
    return OrderingClient(client=http_client, user_id=user_id, cookie_name=settings.session_cookie_name)


def build_editor(
    settings: ServiceSettings,
    *,
    order_id: int,
    user_id: int,
    http_client: httpx.AsyncClient | None = None,
    drafts: DraftCache | None = None,
) -> OrderEditor:
    return OrderEditor(
        build_ordering_client(settings, user_id=user_id, http_client=http_client),
        drafts or build_draft_cache(settings),
        order_id=order_id,
        debounce_seconds=settings.search_debounce_seconds,
    )


def build_notification_bell(
    settings: ServiceSettings,
    *,
    user_id: int,
    http_client: httpx.AsyncClient | None = None,
    on_change: UnreadListener | None = None,
) -> NotificationBell:
    if http_client is None:
        http_client = _http_client(settings, settings.notification_service_url, "notification_service_url")
    client = NotificationClient(client=http_client, user_id=user_id, cookie_name=settings.session_cookie_name)
    return NotificationBell(
        client,
        interval_seconds=settings.notification_poll_interval_seconds,
        on_change=on_change,
    )
