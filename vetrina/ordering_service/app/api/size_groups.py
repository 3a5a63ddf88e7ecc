"""HTTP routes for size groups and their resolved, ordered sizes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.exc import IntegrityError

from ..dependencies import get_size_repository
from ..models import SizeGroup
from ..repository import SizeRepository
from ..schemas import ResolvedSizeResponse, SizeGroupPayload, SizeGroupResponse, SizeResponse
from ..sizing import SizeGroupResolver, sort_sizes

router = APIRouter(prefix="/size-groups", tags=["size-groups"])


def _serialize_group(group: SizeGroup) -> SizeGroupResponse:
    sizes = sort_sizes(member.size for member in group.members)
    return SizeGroupResponse(
        id=group.id,
        name=group.name,
        description=group.description,
        sizes=[SizeResponse.model_validate(size) for size in sizes],
    )


async def _validate_payload(
    payload: SizeGroupPayload,
    repository: SizeRepository,
    *,
    exclude_id: int | None = None,
) -> None:
    if await repository.find_size_group_by_name(payload.name, exclude_id=exclude_id) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Size group name already exists")
    unique_ids = set(payload.sizes)
    if await repository.count_sizes(list(unique_ids)) != len(unique_ids):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown size id")


@router.get("", response_model=list[SizeGroupResponse])
async def list_size_groups(repository: SizeRepository = Depends(get_size_repository)) -> list[SizeGroupResponse]:
    return [_serialize_group(group) for group in await repository.list_size_groups()]


@router.post("", response_model=SizeGroupResponse, status_code=status.HTTP_201_CREATED)
async def create_size_group(
    payload: SizeGroupPayload,
    repository: SizeRepository = Depends(get_size_repository),
) -> SizeGroupResponse:
    await _validate_payload(payload, repository)
    group = await repository.create_size_group(
        name=payload.name, description=payload.description, size_ids=payload.sizes
    )
    return _serialize_group(group)


@router.get("/{size_group_id}", response_model=SizeGroupResponse)
async def get_size_group(
    size_group_id: int,
    repository: SizeRepository = Depends(get_size_repository),
) -> SizeGroupResponse:
    group = await repository.get_size_group(size_group_id)
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Size group not found")
    return _serialize_group(group)


@router.get("/{size_group_id}/sizes", response_model=list[ResolvedSizeResponse])
async def resolve_size_group(
    size_group_id: int,
    repository: SizeRepository = Depends(get_size_repository),
) -> list[ResolvedSizeResponse]:
    """Ordered sizes of a group; an unknown group yields an empty list."""

    sizes = await SizeGroupResolver(repository).resolve(size_group_id)
    return [ResolvedSizeResponse.model_validate(size) for size in sizes]


@router.put("/{size_group_id}", response_model=SizeGroupResponse)
async def update_size_group(
    size_group_id: int,
    payload: SizeGroupPayload,
    repository: SizeRepository = Depends(get_size_repository),
) -> SizeGroupResponse:
    group = await repository.get_size_group(size_group_id)
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Size group not found")
    await _validate_payload(payload, repository, exclude_id=size_group_id)
    updated = await repository.update_size_group(
        group, name=payload.name, description=payload.description, size_ids=payload.sizes
    )
    return _serialize_group(updated)


@router.delete("/{size_group_id}")
async def delete_size_group(
    size_group_id: int,
    repository: SizeRepository = Depends(get_size_repository),
) -> Response:
    group = await repository.get_size_group(size_group_id)
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Size group not found")
    try:
        await repository.delete_size_group(group)
    except IntegrityError as exc:
        await repository.session.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Size group is used by existing products"
        ) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
