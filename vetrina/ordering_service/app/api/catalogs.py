"""HTTP routes for seasonal catalogs and their lifecycle."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import get_catalog_repository, get_catalog_service, get_current_client
from ..models import Catalog, Client
from ..repository import CatalogRepository
from ..schemas import CatalogCreate, CatalogResponse, CatalogStatusUpdate
from ..services import BrandNotFound, CatalogService, DuplicateCatalogError, InvalidStatusTransition

router = APIRouter(prefix="/catalogs", tags=["catalogs"])


def _serialize_catalog(catalog: Catalog) -> CatalogResponse:
    return CatalogResponse(
        id=catalog.id,
        code=catalog.code,
        name=catalog.name,
        brand_id=catalog.brand_id,
        brand_name=catalog.brand.name,
        catalog_type=catalog.catalog_type,
        season=catalog.season,
        year=catalog.year,
        order_start_date=catalog.order_start_date,
        order_end_date=catalog.order_end_date,
        delivery_date=catalog.delivery_date,
        note_html=catalog.note_html,
        condition_html=catalog.condition_html,
        cover_url=catalog.cover_url,
        status=catalog.status,  # type: ignore[arg-type]
        created_at=catalog.created_at,
        updated_at=catalog.updated_at,
    )


@router.get("", response_model=list[CatalogResponse])
async def list_client_catalogs(
    client: Client = Depends(get_current_client),
    repository: CatalogRepository = Depends(get_catalog_repository),
) -> list[CatalogResponse]:
    """Published catalogs of the brands the session's client is linked to."""

    catalogs = await repository.list_catalogs(client_id=client.id, status="published")
    return [_serialize_catalog(catalog) for catalog in catalogs]


@router.post("", response_model=CatalogResponse, status_code=status.HTTP_201_CREATED)
async def create_catalog(
    payload: CatalogCreate,
    service: CatalogService = Depends(get_catalog_service),
) -> CatalogResponse:
    if (
        payload.order_start_date is not None
        and payload.order_end_date is not None
        and payload.order_end_date < payload.order_start_date
    ):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Ordering window ends before it starts")
    try:
        catalog = await service.create_catalog(payload)
    except BrandNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Brand not found") from exc
    except DuplicateCatalogError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Catalog code already exists") from exc
    return _serialize_catalog(catalog)


@router.get("/{catalog_id}", response_model=CatalogResponse)
async def get_catalog(
    catalog_id: int,
    repository: CatalogRepository = Depends(get_catalog_repository),
) -> CatalogResponse:
    catalog = await repository.get_catalog(catalog_id)
    if catalog is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Catalog not found")
    return _serialize_catalog(catalog)


@router.patch("/{catalog_id}/status", response_model=CatalogResponse)
async def update_catalog_status(
    catalog_id: int,
    payload: CatalogStatusUpdate,
    service: CatalogService = Depends(get_catalog_service),
) -> CatalogResponse:
    catalog = await service.repository.get_catalog(catalog_id)
    if catalog is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Catalog not found")
    try:
        updated = await service.change_status(catalog, status=payload.status)
    except InvalidStatusTransition as exc:
        await service.repository.session.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _serialize_catalog(updated)
