"""HTTP routes for a client's orders."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..dependencies import get_current_client, get_order_service
from ..models import Client, Order
from ..schemas import BrandResponse, OrderCatalogSummary, OrderCreate, OrderResponse, OrderStatusUpdate
from ..services import CatalogNotFound, OrderNotEditable, OrderService, from_cents

router = APIRouter(prefix="/orders", tags=["orders"])


def _serialize_order(order: Order, total_cents: int) -> OrderResponse:
    catalog = order.catalog
    return OrderResponse(
        id=order.id,
        order_number=order.order_number,
        order_type=order.order_type,
        status=order.status,  # type: ignore[arg-type]
        client_id=order.client_id,
        total_amount=from_cents(total_cents),  # type: ignore[arg-type]
        catalog=OrderCatalogSummary(
            id=catalog.id,
            name=catalog.name,
            code=catalog.code,
            catalog_type=catalog.catalog_type,
            season=catalog.season,
            year=catalog.year,
            brand=BrandResponse.model_validate(catalog.brand),
        ),
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


async def load_client_order(order_id: int, client: Client, service: OrderService) -> Order:
    order = await service.orders.get_client_order(order_id, client.id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


@router.get("", response_model=list[OrderResponse])
async def list_orders(
    client: Client = Depends(get_current_client),
    service: OrderService = Depends(get_order_service),
) -> list[OrderResponse]:
    rows = await service.orders.list_client_orders(client.id)
    return [_serialize_order(order, total) for order, total in rows]


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    client: Client = Depends(get_current_client),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    try:
        order = await service.create_order(client, payload)
    except CatalogNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Catalog not found") from exc
    return _serialize_order(order, 0)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    client: Client = Depends(get_current_client),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    order = await load_client_order(order_id, client, service)
    return _serialize_order(order, await service.orders.total_cents(order.id))


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    client: Client = Depends(get_current_client),
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    order = await load_client_order(order_id, client, service)
    updated = await service.change_status(order, status=payload.status)
    return _serialize_order(updated, await service.orders.total_cents(updated.id))


@router.delete("/{order_id}")
async def delete_order(
    order_id: int,
    client: Client = Depends(get_current_client),
    service: OrderService = Depends(get_order_service),
) -> Response:
    order = await load_client_order(order_id, client, service)
    try:
        await service.delete_order(order)
    except OrderNotEditable as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
