from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import get_size_repository
from ..repository import SizeRepository
from ..schemas import SizeCreate, SizeResponse
from ..sizing import sort_sizes

router = APIRouter(prefix="/sizes", tags=["sizes"])


@router.get("", response_model=list[SizeResponse])
async def list_sizes(repository: SizeRepository = Depends(get_size_repository)) -> list[SizeResponse]:
    sizes = sort_sizes(await repository.list_sizes())
    return [SizeResponse.model_validate(size) for size in sizes]


@router.post("", response_model=SizeResponse, status_code=status.HTTP_201_CREATED)
async def create_size(
    payload: SizeCreate,
    repository: SizeRepository = Depends(get_size_repository),
) -> SizeResponse:
    if await repository.get_size_by_name(payload.name) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Size already exists")
    size = await repository.create_size(payload.name)
    return SizeResponse.model_validate(size)
