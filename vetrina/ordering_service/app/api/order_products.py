"""HTTP routes replacing and reading the sized lines of an order."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import get_current_client, get_order_service, get_reconciler
from ..models import Client
from ..schemas import (
    OrderLine,
    OrderLinesResponse,
    OrderProductsSave,
    OrderProductsSaveResponse,
    SavedOrderProduct,
    SizeQuantity,
)
from ..services import OrderLineReconciler, OrderSaveError, OrderService, from_cents
from .orders import load_client_order

router = APIRouter(prefix="/orders/{order_id}/products", tags=["order-products"])


@router.get("", response_model=OrderLinesResponse)
async def get_order_lines(
    order_id: int,
    client: Client = Depends(get_current_client),
    service: OrderService = Depends(get_order_service),
    reconciler: OrderLineReconciler = Depends(get_reconciler),
) -> OrderLinesResponse:
    order = await load_client_order(order_id, client, service)
    lines = await reconciler.lines_for_order(order.id)
    return OrderLinesResponse(
        lines=[
            OrderLine(
                article_code=line.article_code,
                variant_code=line.variant_code,
                size_group_id=line.size_group_id,
                size_group_name=line.size_group_name,
                price=from_cents(line.price_cents),  # type: ignore[arg-type]
                sizes_quantities=[
                    SizeQuantity(size_id=entry.size_id, size_name=entry.size_name, quantity=entry.quantity)
                    for entry in line.sizes_quantities
                ],
            )
            for line in lines
        ]
    )


@router.post("", response_model=OrderProductsSaveResponse)
async def save_order_lines(
    order_id: int,
    payload: OrderProductsSave,
    client: Client = Depends(get_current_client),
    service: OrderService = Depends(get_order_service),
    reconciler: OrderLineReconciler = Depends(get_reconciler),
) -> OrderProductsSaveResponse:
    """Replace every row of the order with the posted rows in one transaction."""

    order = await load_client_order(order_id, client, service)
    try:
        result = await reconciler.save(order, payload.products)
    except OrderSaveError as exc:
        await reconciler.orders.session.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    message = "Order products saved" if result.saved else "Order saved with no rows"
    return OrderProductsSaveResponse(
        message=message,
        saved=[
            SavedOrderProduct(
                product_id=row.product_id,
                quantity=row.quantity,
                price=from_cents(row.price_cents),  # type: ignore[arg-type]
            )
            for row in result.saved
        ],
        skipped=result.skipped,
    )
