"""Size ordering and size-group resolution."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence, TypeVar

LETTER_SIZES: tuple[str, ...] = (
    "XXXS",
    "XXS",
    "XS",
    "S",
    "M",
    "L",
    "XL",
    "XXL",
    "XXXL",
    "XXXXL",
)
_LETTER_RANK = {name: rank for rank, name in enumerate(LETTER_SIZES)}
_NUMERIC = re.compile(r"^\d+(?:[.,]\d+)?$")


class _Named(Protocol):
    @property
    def name(self) -> str: ...


T = TypeVar("T", bound=_Named)


@dataclass(slots=True, frozen=True)
class ResolvedSize:
    id: int
    name: str
    product_id: int | None = None


def size_sort_key(name: str) -> tuple[int, float, str]:
    """Letter sizes by table rank, then numeric sizes ascending, then the rest alphabetically."""

    cleaned = name.strip().upper()
    if cleaned in _LETTER_RANK:
        return (0, float(_LETTER_RANK[cleaned]), "")
    if _NUMERIC.match(cleaned):
        return (1, float(cleaned.replace(",", ".")), "")
    return (2, 0.0, cleaned.casefold())


def sort_sizes(sizes: Iterable[T]) -> list[T]:
    return sorted(sizes, key=lambda size: size_sort_key(size.name))


def sort_size_names(names: Iterable[str]) -> list[str]:
    return sorted(names, key=size_sort_key)


class SizeSource(Protocol):
    async def list_group_sizes(self, size_group_id: int) -> Sequence[tuple[int, str]]: ...


class SizeGroupResolver:
    """Turns a size group id into its ordered sizes.

    An unknown group resolves to an empty list; callers report "no sizes
    available" instead of failing.
    """

    def __init__(self, source: SizeSource) -> None:
        self.source = source

    async def resolve(
        self,
        size_group_id: int,
        *,
        product_ids: dict[int, int] | None = None,
    ) -> list[ResolvedSize]:
        rows = await self.source.list_group_sizes(size_group_id)
        product_ids = product_ids or {}
        resolved = [
            ResolvedSize(id=size_id, name=name, product_id=product_ids.get(size_id))
            for size_id, name in rows
        ]
        return sort_sizes(resolved)
