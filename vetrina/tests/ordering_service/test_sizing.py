import pytest

from vetrina.ordering_service.app.sizing import (
    ResolvedSize,
    SizeGroupResolver,
    sort_size_names,
    size_sort_key,
)


class _StaticSizeSource:
    def __init__(self, groups: dict[int, list[tuple[int, str]]]) -> None:
        self.groups = groups
        self.calls: list[int] = []

    async def list_group_sizes(self, size_group_id: int) -> list[tuple[int, str]]:
        self.calls.append(size_group_id)
        return list(self.groups.get(size_group_id, []))


def test_letters_before_numbers() -> None:
    assert sort_size_names(["10", "M", "XS", "2"]) == ["XS", "M", "2", "10"]


def test_full_letter_table_order() -> None:
    shuffled = ["XXL", "s", "XXXXL", "xs", "L", "XXXS", "M", "XL", "XXS", "XXXL"]
    assert sort_size_names(shuffled) == [
        "XXXS",
        "XXS",
        "xs",
        "s",
        "M",
        "L",
        "XL",
        "XXL",
        "XXXL",
        "XXXXL",
    ]


def test_numeric_sizes_compare_numerically_and_others_last() -> None:
    assert sort_size_names(["42", "38.5", "9", "TU", "one size", "40"]) == [
        "9",
        "38.5",
        "40",
        "42",
        "one size",
        "TU",
    ]
    assert size_sort_key("38,5") == size_sort_key("38.5")


@pytest.mark.asyncio
async def test_resolver_sorts_and_attaches_product_ids() -> None:
    source = _StaticSizeSource({5: [(1, "10"), (2, "M"), (3, "XS"), (4, "2")]})
    resolver = SizeGroupResolver(source)

    resolved = await resolver.resolve(5, product_ids={2: 200})

    assert [size.name for size in resolved] == ["XS", "M", "2", "10"]
    assert resolved[1] == ResolvedSize(id=2, name="M", product_id=200)
    assert resolved[0].product_id is None


@pytest.mark.asyncio
async def test_unknown_group_resolves_to_empty_list() -> None:
    resolver = SizeGroupResolver(_StaticSizeSource({}))
    assert await resolver.resolve(99) == []
