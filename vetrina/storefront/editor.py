"""Client-side order editor store.

The editor keeps the in-progress lines of one order and exposes explicit
actions (load, edit, save, discard). Every mutation is mirrored into the
draft cache so unsaved work survives a reload; a successful save clears the
draft and reloads the canonical rows from the server.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import uuid4

from vetrina.ordering_service.app.normalization import article_key, normalize_article_code

from .client import ServiceAPIError, OrderingClient
from .drafts import DraftCache
from .metrics import EDITOR_LINES_SKIPPED_TOTAL, EDITOR_SAVES_TOTAL, EDITOR_SEARCH_FAILURES_TOTAL

_LOGGER = logging.getLogger(__name__)


class DestructiveChangeError(Exception):
    """Raised when an action would discard entered quantities without confirmation."""


class LineLockedError(Exception):
    """Raised when editing identity fields of a line that came from the catalog."""


class NothingToSaveError(Exception):
    pass


@dataclass(slots=True)
class SizeSlot:
    size_id: int
    size_name: str
    quantity: int = 0


@dataclass(slots=True)
class DraftLine:
    key: str = field(default_factory=lambda: uuid4().hex)
    article_code: str = ""
    variant_code: str = ""
    size_group_id: int | None = None
    sizes_quantities: list[SizeSlot] = field(default_factory=list)
    price: Decimal = Decimal("0")
    from_database: bool = False

    @property
    def total_quantity(self) -> int:
        return sum(slot.quantity for slot in self.sizes_quantities)

    @property
    def total(self) -> Decimal:
        return self.price * self.total_quantity

    def has_quantities(self) -> bool:
        return any(slot.quantity for slot in self.sizes_quantities)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "article_code": self.article_code,
            "variant_code": self.variant_code,
            "size_group_id": self.size_group_id,
            "sizes_quantities": [
                {"size_id": slot.size_id, "size_name": slot.size_name, "quantity": slot.quantity}
                for slot in self.sizes_quantities
            ],
            "price": str(self.price),
            "from_database": self.from_database,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DraftLine:
        return cls(
            key=str(data.get("key") or uuid4().hex),
            article_code=str(data.get("article_code") or ""),
            variant_code=str(data.get("variant_code") or ""),
            size_group_id=data.get("size_group_id"),
            sizes_quantities=[
                SizeSlot(
                    size_id=int(slot["size_id"]),
                    size_name=str(slot.get("size_name", "")),
                    quantity=int(slot.get("quantity", 0)),
                )
                for slot in data.get("sizes_quantities", [])
            ],
            price=_to_decimal(data.get("price")),
            from_database=bool(data.get("from_database", False)),
        )


def _to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"invalid price {value!r}") from exc


def _zeroed_slots(sizes: list[dict[str, Any]]) -> list[SizeSlot]:
    return [SizeSlot(size_id=int(size["id"]), size_name=str(size["name"])) for size in sizes]


@dataclass(slots=True)
class SaveOutcome:
    message: str
    saved: int
    skipped: int


class OrderEditor:
    def __init__(
        self,
        client: OrderingClient,
        drafts: DraftCache,
        *,
        order_id: int,
        brand_id: str | None = None,
        debounce_seconds: float = 0.3,
    ) -> None:
        self.client = client
        self.drafts = drafts
        self.order_id = order_id
        self.brand_id = brand_id
        self.debounce_seconds = debounce_seconds
        self.lines: list[DraftLine] = []
        self.suggestions: dict[str, list[dict[str, Any]]] = {}
        self.restored_from_draft = False
        self._searches: dict[str, asyncio.Task[None]] = {}

    # Loading ------------------------------------------------------------------------------
    async def load(self) -> None:
        """Load the order, preferring a live local draft over the stored rows."""

        if self.brand_id is None:
            order = await self.client.get_order(self.order_id)
            self.brand_id = order["catalog"]["brand"]["id"]
        cached = await self.drafts.load(self.order_id)
        if cached is not None:
            self.lines = [DraftLine.from_dict(line) for line in cached]
            self.restored_from_draft = True
            return
        await self._load_from_server()

    async def _load_from_server(self) -> None:
        rows = await self.client.get_order_lines(self.order_id)
        self.lines = [
            DraftLine(
                article_code=row["article_code"],
                variant_code=row["variant_code"],
                size_group_id=row.get("size_group_id"),
                sizes_quantities=[
                    SizeSlot(size_id=entry["size_id"], size_name=entry["size_name"], quantity=entry["quantity"])
                    for entry in row.get("sizes_quantities", [])
                ],
                price=_to_decimal(row.get("price")),
                from_database=True,
            )
            for row in rows
        ]
        self.suggestions.clear()
        self.restored_from_draft = False

    # Line actions -------------------------------------------------------------------------
    def line(self, key: str) -> DraftLine:
        for line in self.lines:
            if line.key == key:
                return line
        raise KeyError(key)

    async def add_line(self) -> DraftLine:
        line = DraftLine()
        self.lines.append(line)
        await self._persist()
        return line

    async def remove_line(self, key: str) -> None:
        line = self.line(key)
        self.lines.remove(line)
        self.suggestions.pop(key, None)
        pending = self._searches.pop(key, None)
        if pending is not None:
            pending.cancel()
        await self._persist()

    async def edit_codes(
        self,
        key: str,
        *,
        article_code: str | None = None,
        variant_code: str | None = None,
    ) -> None:
        """Edit article/variant of a free line and schedule a debounced product search."""

        line = self.line(key)
        if line.from_database:
            raise LineLockedError("Line comes from the catalog; remove it to change the article")
        if article_code is not None:
            line.article_code = article_code
        if variant_code is not None:
            line.variant_code = variant_code
        await self._persist()
        self._schedule_search(line)

    async def select_size_group(self, key: str, size_group_id: int, *, confirm: bool = False) -> None:
        """Switch the line to a size group, zeroing a quantity for every size in it."""

        line = self.line(key)
        if line.from_database:
            raise LineLockedError("Line comes from the catalog; its size group is fixed")
        if line.has_quantities() and not confirm:
            raise DestructiveChangeError("Changing the size group discards the quantities already entered")
        sizes = await self.client.resolve_size_group(size_group_id)
        line.size_group_id = size_group_id
        line.sizes_quantities = _zeroed_slots(sizes)
        await self._persist()

    async def apply_suggestion(self, key: str, suggestion: dict[str, Any], *, confirm: bool = False) -> None:
        line = self.line(key)
        if line.has_quantities() and not confirm:
            raise DestructiveChangeError("Applying a product discards the quantities already entered")
        line.article_code = suggestion["article_code"]
        line.variant_code = suggestion["variant_code"]
        line.size_group_id = suggestion.get("size_group_id")
        line.price = _to_decimal(suggestion.get("wholesale_price"))
        line.sizes_quantities = _zeroed_slots(suggestion.get("sizes", []))
        line.from_database = True
        self.suggestions.pop(key, None)
        await self._persist()

    async def set_quantity(self, key: str, size_id: int, quantity: int) -> None:
        if quantity < 0:
            raise ValueError("quantity must be zero or positive")
        line = self.line(key)
        for slot in line.sizes_quantities:
            if slot.size_id == size_id:
                slot.quantity = quantity
                break
        else:
            raise KeyError(f"size {size_id} is not part of the line's size group")
        await self._persist()

    async def set_price(self, key: str, price: Decimal | str) -> None:
        value = _to_decimal(price)
        if value < 0:
            raise ValueError("price must be zero or positive")
        self.line(key).price = value
        await self._persist()

    def line_total(self, key: str) -> Decimal:
        return self.line(key).total

    @property
    def order_total(self) -> Decimal:
        return sum((line.total for line in self.lines), Decimal("0"))

    # Search -------------------------------------------------------------------------------
    def _schedule_search(self, line: DraftLine) -> None:
        pending = self._searches.pop(line.key, None)
        if pending is not None and not pending.done():
            pending.cancel()
        self._searches[line.key] = asyncio.create_task(self._debounced_search(line.key))

    async def _debounced_search(self, key: str) -> None:
        await asyncio.sleep(self.debounce_seconds)
        try:
            line = self.line(key)
        except KeyError:
            return
        if not article_key(line.article_code) or self.brand_id is None:
            self.suggestions[key] = []
            return
        try:
            self.suggestions[key] = await self.client.search_products(
                line.article_code, self.brand_id, line.variant_code.strip() or None
            )
        except ServiceAPIError as exc:
            EDITOR_SEARCH_FAILURES_TOTAL.inc()
            _LOGGER.warning("Product search for line %s failed: %s", key, exc.message)
            self.suggestions[key] = []

    async def wait_for_search(self, key: str) -> list[dict[str, Any]]:
        task = self._searches.get(key)
        if task is not None:
            await task
        return self.suggestions.get(key, [])

    # Persistence --------------------------------------------------------------------------
    def build_products(self) -> tuple[list[dict[str, Any]], int]:
        """Expand complete lines into one row per size; return the rows and the skipped line count."""

        if self.brand_id is None:
            raise RuntimeError("editor is not loaded")
        products: list[dict[str, Any]] = []
        skipped = 0
        for line in self.lines:
            normalized = normalize_article_code(line.article_code)
            variant = line.variant_code.strip()
            if not article_key(normalized) or not variant or line.size_group_id is None:
                skipped += 1
                EDITOR_LINES_SKIPPED_TOTAL.inc()
                _LOGGER.warning(
                    "Skipping incomplete line %s (article=%r variant=%r size_group=%r)",
                    line.key,
                    line.article_code,
                    line.variant_code,
                    line.size_group_id,
                )
                continue
            quantities = {slot.size_id: slot.quantity for slot in line.sizes_quantities}
            for slot in line.sizes_quantities:
                products.append(
                    {
                        "article_code": normalized,
                        "variant_code": variant,
                        "size_id": slot.size_id,
                        "size_group_id": line.size_group_id,
                        "brand_id": self.brand_id,
                        "quantity": quantities.get(slot.size_id, 0),
                        "price": str(line.price),
                    }
                )
        return products, skipped

    async def save(self) -> SaveOutcome:
        """Post every row of the order; the server replaces the stored rows atomically."""

        products, skipped = self.build_products()
        if not products:
            raise NothingToSaveError("No complete line to save")
        try:
            response = await self.client.save_order_lines(self.order_id, products)
        except ServiceAPIError:
            EDITOR_SAVES_TOTAL.labels(outcome="failed").inc()
            raise
        EDITOR_SAVES_TOTAL.labels(outcome="saved").inc()
        await self.drafts.clear(self.order_id)
        await self._load_from_server()
        return SaveOutcome(
            message=str(response.get("message", "")),
            saved=len(response.get("saved", [])),
            skipped=skipped + int(response.get("skipped", 0)),
        )

    async def discard(self) -> None:
        """Drop the local draft and return to the stored rows."""

        await self.drafts.clear(self.order_id)
        await self._load_from_server()

    async def _persist(self) -> None:
        await self.drafts.save(self.order_id, [line.to_dict() for line in self.lines])
