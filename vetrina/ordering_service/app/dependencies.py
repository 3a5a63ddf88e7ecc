"""Dependency helpers for the ordering service."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vetrina.common import get_current_user_id, lifespan_session

from .events import OrderingEventPublisher
from .models import Client
from .repository import CatalogRepository, OrderRepository, ProductRepository, SizeRepository
from .services import CatalogService, OrderLineReconciler, OrderService, ProductMatcher


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield an AsyncSession for the current request lifecycle."""

    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with lifespan_session(session_factory) as session:
        yield session


def get_catalog_repository(session: AsyncSession = Depends(get_session)) -> CatalogRepository:
    return CatalogRepository(session)


def get_size_repository(session: AsyncSession = Depends(get_session)) -> SizeRepository:
    return SizeRepository(session)


def get_product_repository(session: AsyncSession = Depends(get_session)) -> ProductRepository:
    return ProductRepository(session)


def get_order_repository(session: AsyncSession = Depends(get_session)) -> OrderRepository:
    return OrderRepository(session)


def get_event_publisher(request: Request) -> OrderingEventPublisher | None:
    return getattr(request.app.state, "event_publisher", None)


def _search_limit(request: Request) -> int:
    settings: Any = getattr(request.app.state, "settings", None)
    return getattr(settings, "product_search_limit", 10)


def get_product_matcher(
    request: Request,
    products: ProductRepository = Depends(get_product_repository),
    sizes: SizeRepository = Depends(get_size_repository),
) -> ProductMatcher:
    return ProductMatcher(products, sizes, search_limit=_search_limit(request))


def get_reconciler(
    orders: OrderRepository = Depends(get_order_repository),
    matcher: ProductMatcher = Depends(get_product_matcher),
) -> OrderLineReconciler:
    return OrderLineReconciler(orders, matcher)


def get_catalog_service(
    repository: CatalogRepository = Depends(get_catalog_repository),
    events: OrderingEventPublisher | None = Depends(get_event_publisher),
) -> CatalogService:
    return CatalogService(repository, events)


def get_order_service(
    orders: OrderRepository = Depends(get_order_repository),
    catalogs: CatalogRepository = Depends(get_catalog_repository),
    events: OrderingEventPublisher | None = Depends(get_event_publisher),
) -> OrderService:
    return OrderService(orders, catalogs, events)


async def get_current_client(
    user_id: int = Depends(get_current_user_id),
    repository: CatalogRepository = Depends(get_catalog_repository),
) -> Client:
    """Resolve the client company behind the session cookie."""

    client = await repository.get_client_by_user(user_id)
    if client is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return client
