"""HTTP routes for sized product management and lookup."""

from __future__ import annotations

import math
from collections import Counter
from typing import Any, get_args

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.exc import IntegrityError

from vetrina.common import get_current_user_id

from ..dependencies import get_product_matcher, get_product_repository
from ..models import Product
from ..repository import ProductRepository
from ..schemas import (
    Pagination,
    ProductCheckRequest,
    ProductCheckResponse,
    ProductGroupDeleteRequest,
    ProductGroupDeleteResponse,
    ProductGroupUpdateRequest,
    ProductGroupUpdateResponse,
    ProductImportRequest,
    ProductImportResponse,
    ProductImportResult,
    ProductListResponse,
    ProductPayload,
    ProductResponse,
    ProductStatus,
    ProductSuggestion,
    ResolvedSizeResponse,
)
from ..services import (
    DuplicateProductError,
    ProductGroupNotFound,
    ProductMatcher,
    ProductsInUseError,
    from_cents,
    to_cents,
)

router = APIRouter(prefix="/products", tags=["products"])


def _serialize_product(product: Product) -> dict[str, object]:
    return {
        "id": product.id,
        "article_code": product.article_code,
        "variant_code": product.variant_code,
        "size_id": product.size_id,
        "size_name": product.size.name if product.size is not None else None,
        "size_group_id": product.size_group_id,
        "brand_id": product.brand_id,
        "brand_name": product.brand.name if product.brand is not None else None,
        "wholesale_price": from_cents(product.wholesale_price_cents),
        "retail_price": from_cents(product.retail_price_cents),
        "status": product.status,
        "created_at": product.created_at,
        "updated_at": product.updated_at,
    }


def _payload_fields(payload: ProductPayload) -> dict[str, Any]:
    return {
        "article_code": payload.article_code,
        "variant_code": payload.variant_code,
        "size_id": payload.size_id,
        "size_group_id": payload.size_group_id,
        "brand_id": payload.brand_id,
        "wholesale_price_cents": to_cents(payload.wholesale_price),
        "retail_price_cents": to_cents(payload.retail_price) if payload.retail_price is not None else None,
        "status": payload.status,
    }


@router.get("", response_model=ProductListResponse)
async def list_products(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, alias="pageSize", ge=-1),
    search: str | None = Query(default=None),
    status_filter: ProductStatus | None = Query(default=None, alias="status"),
    brand: str | None = Query(default=None),
    repository: ProductRepository = Depends(get_product_repository),
) -> ProductListResponse:
    if page_size == 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="pageSize must be -1 or positive")
    show_all = page_size == -1
    products, total = await repository.list_products(
        page=1 if show_all else page,
        page_size=None if show_all else page_size,
        search=search.strip() if search and search.strip() else None,
        status=status_filter,
        brand=brand.strip() if brand else None,
    )
    effective_size = total if show_all else page_size
    return ProductListResponse(
        data=[ProductResponse.model_validate(_serialize_product(product)) for product in products],
        pagination=Pagination(
            page=1 if show_all else page,
            page_size=effective_size,
            total=total,
            total_pages=1 if show_all else math.ceil(total / page_size),
        ),
    )


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductPayload,
    matcher: ProductMatcher = Depends(get_product_matcher),
) -> ProductResponse:
    try:
        product = await matcher.create_product(**_payload_fields(payload))
    except DuplicateProductError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except IntegrityError as exc:
        await matcher.products.session.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown brand, size or size group"
        ) from exc
    return ProductResponse.model_validate(_serialize_product(product))


@router.get("/search", response_model=list[ProductSuggestion])
async def search_products(
    q: str = Query(min_length=1),
    brand_id: str = Query(min_length=1),
    variant: str | None = Query(default=None),
    _user_id: int = Depends(get_current_user_id),
    matcher: ProductMatcher = Depends(get_product_matcher),
) -> list[ProductSuggestion]:
    matches = await matcher.search(q, brand_id, variant)
    return [
        ProductSuggestion(
            article_code=match.article_code,
            variant_code=match.variant_code,
            size_group_id=match.size_group_id,
            brand_id=match.brand_id,
            wholesale_price=from_cents(match.wholesale_price_cents),
            retail_price=from_cents(match.retail_price_cents),
            sizes=[ResolvedSizeResponse.model_validate(size) for size in match.sizes],
        )
        for match in matches
    ]


@router.post("/check", response_model=ProductCheckResponse)
async def check_product(
    payload: ProductCheckRequest,
    matcher: ProductMatcher = Depends(get_product_matcher),
) -> ProductCheckResponse:
    product = await matcher.check(
        article_code=payload.article_code,
        variant_code=payload.variant_code,
        size_id=payload.size_id,
        brand_id=payload.brand_id,
    )
    return ProductCheckResponse(exists=product is not None, product_id=product.id if product else None)


@router.get("/statuses", response_model=list[str])
async def list_product_statuses() -> list[str]:
    return list(get_args(ProductStatus))


@router.post("/bulk-import", response_model=ProductImportResponse)
async def bulk_import_products(
    payload: ProductImportRequest,
    matcher: ProductMatcher = Depends(get_product_matcher),
) -> ProductImportResponse:
    if not payload.products:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No products to import")
    outcomes = await matcher.bulk_import(payload.products)
    counts = Counter(outcome.status for outcome in outcomes)
    return ProductImportResponse(
        created=counts["created"],
        duplicates=counts["duplicate"],
        errors=counts["error"],
        results=[ProductImportResult.model_validate(outcome, from_attributes=True) for outcome in outcomes],
    )


@router.put("/group-update", response_model=ProductGroupUpdateResponse)
async def update_product_group(
    payload: ProductGroupUpdateRequest,
    matcher: ProductMatcher = Depends(get_product_matcher),
) -> ProductGroupUpdateResponse:
    try:
        updated = await matcher.update_group(payload, payload.updates)
    except ProductGroupNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No products found for this group") from exc
    except DuplicateProductError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ProductGroupUpdateResponse(message="Products updated", updated_count=updated)


@router.delete("/group-delete", response_model=ProductGroupDeleteResponse)
async def delete_product_group(
    payload: ProductGroupDeleteRequest,
    matcher: ProductMatcher = Depends(get_product_matcher),
) -> ProductGroupDeleteResponse:
    try:
        deleted = await matcher.delete_group(payload, status=payload.status)
    except ProductGroupNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No products found for this group") from exc
    except ProductsInUseError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ProductGroupDeleteResponse(message=f"{deleted} products deleted", deleted_count=deleted)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    repository: ProductRepository = Depends(get_product_repository),
) -> ProductResponse:
    product = await repository.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return ProductResponse.model_validate(_serialize_product(product))


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    payload: ProductPayload,
    matcher: ProductMatcher = Depends(get_product_matcher),
) -> ProductResponse:
    product = await matcher.products.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    try:
        updated = await matcher.update_product(product, _payload_fields(payload))
    except DuplicateProductError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except IntegrityError as exc:
        await matcher.products.session.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown brand, size or size group"
        ) from exc
    return ProductResponse.model_validate(_serialize_product(updated))


@router.delete("/{product_id}")
async def delete_product(
    product_id: int,
    repository: ProductRepository = Depends(get_product_repository),
) -> Response:
    product = await repository.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    try:
        await repository.delete_product(product)
    except IntegrityError as exc:
        await repository.session.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Product is referenced by existing orders"
        ) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
