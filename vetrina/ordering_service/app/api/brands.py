from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import get_catalog_repository
from ..repository import CatalogRepository
from ..schemas import BrandCreate, BrandResponse

router = APIRouter(prefix="/brands", tags=["brands"])


@router.get("", response_model=list[BrandResponse])
async def list_brands(repository: CatalogRepository = Depends(get_catalog_repository)) -> list[BrandResponse]:
    return [BrandResponse.model_validate(brand) for brand in await repository.list_brands()]


@router.post("", response_model=BrandResponse, status_code=status.HTTP_201_CREATED)
async def create_brand(
    payload: BrandCreate,
    repository: CatalogRepository = Depends(get_catalog_repository),
) -> BrandResponse:
    if await repository.get_brand(payload.id) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Brand already exists")
    brand = await repository.create_brand(brand_id=payload.id, name=payload.name, logo_url=payload.logo_url)
    return BrandResponse.model_validate(brand)
