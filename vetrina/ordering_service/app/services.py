"""Service layer for catalogs, product matching and order line persistence."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Sequence

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .events import OrderingEventPublisher
from .metrics import (
    CATALOG_STATUS_CHANGES_TOTAL,
    ORDER_LINES_SAVED_TOTAL,
    ORDER_ROWS_SKIPPED_TOTAL,
    ORDER_SAVE_FAILURES_TOTAL,
    PRODUCTS_AUTO_CREATED_TOTAL,
    PRODUCTS_IMPORTED_TOTAL,
)
from .models import Catalog, Client, Order, OrderProduct, Product
from .normalization import InvalidArticleCode, article_key, normalize_variant_code, require_article_code
from .repository import CatalogRepository, OrderRepository, ProductRepository, SizeRepository
from .schemas import (
    CatalogCreate,
    ImportStatus,
    OrderCreate,
    OrderProductRow,
    ProductGroupChanges,
    ProductGroupKey,
    ProductPayload,
)
from .sizing import ResolvedSize, SizeGroupResolver, sort_sizes

_LOGGER = logging.getLogger(__name__)

CATALOG_TRANSITIONS: dict[str, frozenset[str]] = {
    "draft": frozenset({"published", "archived"}),
    "published": frozenset({"archived"}),
    "archived": frozenset(),
}


def to_cents(amount: Decimal) -> int:
    return int((amount * Decimal("100")).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return (Decimal(cents) / Decimal("100")).quantize(Decimal("0.01"))


class DuplicateProductError(Exception):
    """Raised when a product with the same normalized identity already exists."""


class ProductGroupNotFound(LookupError):
    pass


class ProductsInUseError(Exception):
    """Raised when deleting products that existing orders still reference."""


class BrandNotFound(LookupError):
    pass


class CatalogNotFound(LookupError):
    pass


class DuplicateCatalogError(Exception):
    pass


class InvalidStatusTransition(Exception):
    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot move from {current} to {requested}")
        self.current = current
        self.requested = requested


class OrderNotEditable(Exception):
    pass


class OrderSaveError(Exception):
    """Raised when replacing an order's lines fails; the caller must roll back."""


# Product search and match-or-create -------------------------------------------------------
@dataclass(slots=True)
class ProductMatch:
    article_code: str
    variant_code: str
    size_group_id: int | None
    brand_id: str
    wholesale_price_cents: int
    retail_price_cents: int | None
    sizes: list[ResolvedSize] = field(default_factory=list)


@dataclass(slots=True)
class ImportOutcome:
    index: int
    status: ImportStatus
    article_code: str | None = None
    variant_code: str | None = None
    size_id: int | None = None
    product_id: int | None = None
    message: str | None = None


class ProductMatcher:
    """Finds existing sized products or creates the missing ones."""

    def __init__(self, products: ProductRepository, sizes: SizeRepository, *, search_limit: int = 10) -> None:
        self.products = products
        self.resolver = SizeGroupResolver(sizes)
        self.search_limit = search_limit

    async def search(self, query: str, brand_id: str, variant: str | None = None) -> list[ProductMatch]:
        cleaned = query.strip()
        if not article_key(cleaned):
            return []
        variant_code = normalize_variant_code(variant) or None
        combos = await self.products.search_variants(
            brand_id=brand_id,
            query=cleaned,
            variant_code=variant_code,
            limit=self.search_limit,
        )

        matches: list[ProductMatch] = []
        for article_code, combo_variant in combos:
            rows = await self.products.list_variant_products(
                brand_id=brand_id,
                article_code=article_code,
                variant_code=combo_variant,
            )
            if not rows:
                continue
            group_ids = {row.size_group_id for row in rows}
            prices = {(row.wholesale_price_cents, row.retail_price_cents) for row in rows}
            if len(group_ids) != 1 or len(prices) != 1:
                # Rows of one article/variant must only differ by size to be offered as a suggestion.
                _LOGGER.debug("Skipping inconsistent product group %s/%s", article_code, combo_variant)
                continue

            size_group_id = group_ids.pop()
            wholesale_cents, retail_cents = prices.pop()
            product_ids = {row.size_id: row.id for row in rows}
            if size_group_id is not None:
                sizes = await self.resolver.resolve(size_group_id, product_ids=product_ids)
            else:
                sizes = sort_sizes(ResolvedSize(id=row.size_id, name=row.size.name, product_id=row.id) for row in rows)
            matches.append(
                ProductMatch(
                    article_code=article_code,
                    variant_code=combo_variant,
                    size_group_id=size_group_id,
                    brand_id=brand_id,
                    wholesale_price_cents=wholesale_cents,
                    retail_price_cents=retail_cents,
                    sizes=sizes,
                )
            )
        return matches

    async def check(
        self,
        *,
        article_code: str,
        variant_code: str,
        size_id: int,
        brand_id: str | None = None,
    ) -> Product | None:
        return await self.products.find_by_key(
            article_code=article_code,
            variant_code=normalize_variant_code(variant_code),
            size_id=size_id,
            brand_id=brand_id,
        )

    async def match_or_create(
        self,
        *,
        article_code: str,
        variant_code: str,
        size_id: int,
        size_group_id: int | None,
        brand_id: str,
        price_cents: int,
    ) -> int:
        """Return the product id for the sized article, inserting it when missing."""

        normalized = require_article_code(article_code)
        variant = normalize_variant_code(variant_code)
        existing = await self.products.find_by_key(
            article_code=normalized,
            variant_code=variant,
            size_id=size_id,
            brand_id=brand_id,
        )
        if existing is not None:
            return existing.id

        product = await self.products.create_product(
            article_code=normalized,
            variant_code=variant,
            size_id=size_id,
            size_group_id=size_group_id,
            brand_id=brand_id,
            wholesale_price_cents=price_cents,
            retail_price_cents=None,
            status="active",
        )
        PRODUCTS_AUTO_CREATED_TOTAL.inc()
        _LOGGER.info("Created product %s %s size=%s brand=%s", normalized, variant, size_id, brand_id)
        return product.id

    async def create_product(
        self,
        *,
        article_code: str,
        variant_code: str,
        size_id: int,
        size_group_id: int | None,
        brand_id: str,
        wholesale_price_cents: int,
        retail_price_cents: int | None,
        status: str,
    ) -> Product:
        duplicate = await self.products.find_by_key(
            article_code=article_code,
            variant_code=variant_code,
            size_id=size_id,
            brand_id=brand_id,
        )
        if duplicate is not None:
            raise DuplicateProductError("Product already exists")
        product = await self.products.create_product(
            article_code=article_code,
            variant_code=variant_code,
            size_id=size_id,
            size_group_id=size_group_id,
            brand_id=brand_id,
            wholesale_price_cents=wholesale_price_cents,
            retail_price_cents=retail_price_cents,
            status=status,
        )
        return await self.products.reload_product(product.id)

    async def update_product(self, product: Product, updates: dict[str, Any]) -> Product:
        duplicate = await self.products.find_by_key(
            article_code=updates["article_code"],
            variant_code=updates["variant_code"],
            size_id=updates["size_id"],
            brand_id=updates["brand_id"],
            exclude_id=product.id,
        )
        if duplicate is not None:
            raise DuplicateProductError("Product already exists")
        return await self.products.update_product(product, updates)

    async def bulk_import(self, rows: Sequence[dict[str, Any]]) -> list[ImportOutcome]:
        """Create every new product of an import; duplicates and bad rows are reported, not raised.

        Rows are checked against the products already stored and against the
        rows created earlier in the same import.
        """

        outcomes: list[ImportOutcome] = []
        for index, raw in enumerate(rows):
            outcome = await self._import_row(index, raw)
            PRODUCTS_IMPORTED_TOTAL.labels(outcome=outcome.status).inc()
            outcomes.append(outcome)
        created = sum(1 for outcome in outcomes if outcome.status == "created")
        _LOGGER.info("Imported %s of %s products", created, len(outcomes))
        return outcomes

    async def _import_row(self, index: int, raw: dict[str, Any]) -> ImportOutcome:
        try:
            payload = ProductPayload.model_validate(raw)
        except ValidationError as exc:
            error = exc.errors()[0]
            field_name = ".".join(str(part) for part in error["loc"]) or "row"
            return ImportOutcome(
                index=index,
                status="error",
                article_code=_optional_str(raw.get("article_code")),
                variant_code=_optional_str(raw.get("variant_code")),
                message=f"{field_name}: {error['msg']}",
            )

        existing = await self.products.find_by_key(
            article_code=payload.article_code,
            variant_code=payload.variant_code,
            size_id=payload.size_id,
            brand_id=payload.brand_id,
        )
        identity = {
            "index": index,
            "article_code": payload.article_code,
            "variant_code": payload.variant_code,
            "size_id": payload.size_id,
        }
        if existing is not None:
            return ImportOutcome(
                status="duplicate",
                product_id=existing.id,
                message="Product already exists for this brand",
                **identity,
            )
        if not await self.products.references_exist(
            brand_id=payload.brand_id, size_id=payload.size_id, size_group_id=payload.size_group_id
        ):
            return ImportOutcome(status="error", message="Unknown brand, size or size group", **identity)

        product = await self.products.create_product(
            article_code=payload.article_code,
            variant_code=payload.variant_code,
            size_id=payload.size_id,
            size_group_id=payload.size_group_id,
            brand_id=payload.brand_id,
            wholesale_price_cents=to_cents(payload.wholesale_price),
            retail_price_cents=to_cents(payload.retail_price) if payload.retail_price is not None else None,
            status=payload.status,
        )
        return ImportOutcome(status="created", product_id=product.id, **identity)

    async def update_group(self, key: ProductGroupKey, changes: ProductGroupChanges) -> int:
        """Apply the same changes to every size of an article/variant; returns the number updated."""

        products = await self.products.list_group(
            article_code=key.article_code,
            variant_code=key.variant_code,
            size_group_id=key.size_group_id,
            brand_id=key.brand_id,
        )
        if not products:
            raise ProductGroupNotFound(key.article_code)

        updates: dict[str, Any] = {}
        if changes.article_code is not None:
            updates["article_code"] = changes.article_code
        if changes.variant_code is not None:
            updates["variant_code"] = changes.variant_code
        if changes.wholesale_price is not None:
            updates["wholesale_price_cents"] = to_cents(changes.wholesale_price)
        if changes.retail_price is not None:
            updates["retail_price_cents"] = to_cents(changes.retail_price)
        if changes.status is not None:
            updates["status"] = changes.status
        if not updates:
            return 0

        if "article_code" in updates or "variant_code" in updates:
            group_ids = {product.id for product in products}
            for product in products:
                clash = await self.products.find_by_key(
                    article_code=updates.get("article_code", product.article_code),
                    variant_code=updates.get("variant_code", product.variant_code),
                    size_id=product.size_id,
                    brand_id=product.brand_id,
                )
                if clash is not None and clash.id not in group_ids:
                    raise DuplicateProductError("Product already exists")

        await self.products.update_group(products, updates)
        _LOGGER.info("Updated %s products of %s %s", len(products), key.article_code, key.variant_code)
        return len(products)

    async def delete_group(self, key: ProductGroupKey, *, status: str) -> int:
        """Delete every size of an article/variant with the given status unless one is ordered."""

        products = await self.products.list_group(
            article_code=key.article_code,
            variant_code=key.variant_code,
            size_group_id=key.size_group_id,
            brand_id=key.brand_id,
            status=status,
        )
        if not products:
            raise ProductGroupNotFound(key.article_code)
        product_ids = [product.id for product in products]
        if await self.products.ordered_product_ids(product_ids):
            raise ProductsInUseError("Products are part of one or more orders")
        deleted = await self.products.delete_products(product_ids)
        _LOGGER.info("Deleted %s products of %s %s", deleted, key.article_code, key.variant_code)
        return deleted


def _optional_str(value: Any) -> str | None:
    return str(value) if value is not None else None


# Order line reconciliation ----------------------------------------------------------------
@dataclass(slots=True)
class SaveResult:
    saved: list[OrderProduct]
    skipped: int


@dataclass(slots=True)
class SizedQuantity:
    size_id: int
    size_name: str
    quantity: int


@dataclass(slots=True)
class OrderLineView:
    article_code: str
    variant_code: str
    size_group_id: int | None
    size_group_name: str | None
    price_cents: int
    sizes_quantities: list[SizedQuantity]


_REQUIRED_ROW_FIELDS = ("article_code", "variant_code", "size_id", "size_group_id", "brand_id")


class OrderLineReconciler:
    """Replaces the full set of OrderProduct rows of one order.

    Every incoming row is resolved to a concrete product (creating it when the
    article is new), zero-quantity rows are dropped, and the existing rows are
    deleted and the new ones bulk inserted in the caller's transaction. Any
    failure raises :class:`OrderSaveError`; the caller rolls back so the
    previous rows and any auto-created products disappear together.
    """

    def __init__(self, orders: OrderRepository, matcher: ProductMatcher) -> None:
        self.orders = orders
        self.matcher = matcher

    async def save(self, order: Order, rows: Sequence[OrderProductRow]) -> SaveResult:
        skipped = 0
        collected: dict[int, dict[str, int]] = {}
        try:
            for index, row in enumerate(rows):
                missing = [name for name in _REQUIRED_ROW_FIELDS if not getattr(row, name)]
                if missing:
                    skipped += 1
                    ORDER_ROWS_SKIPPED_TOTAL.labels(reason="missing_field").inc()
                    _LOGGER.warning("Order %s row %s skipped, missing %s", order.id, index, ", ".join(missing))
                    continue
                try:
                    product_id = await self.matcher.match_or_create(
                        article_code=row.article_code or "",
                        variant_code=row.variant_code or "",
                        size_id=row.size_id or 0,
                        size_group_id=row.size_group_id,
                        brand_id=row.brand_id or "",
                        price_cents=to_cents(row.price),
                    )
                except InvalidArticleCode:
                    skipped += 1
                    ORDER_ROWS_SKIPPED_TOTAL.labels(reason="invalid_article").inc()
                    _LOGGER.warning("Order %s row %s skipped, empty article code %r", order.id, index, row.article_code)
                    continue

                if row.quantity <= 0:
                    continue
                price_cents = to_cents(row.price)
                entry = collected.get(product_id)
                if entry is None:
                    collected[product_id] = {
                        "product_id": product_id,
                        "quantity": row.quantity,
                        "price_cents": price_cents,
                    }
                else:
                    entry["quantity"] += row.quantity
                    entry["price_cents"] = price_cents

            await self.orders.delete_lines(order.id)
            saved = await self.orders.insert_lines(order.id, list(collected.values()))
        except SQLAlchemyError as exc:
            ORDER_SAVE_FAILURES_TOTAL.inc()
            _LOGGER.exception("Saving lines of order %s failed", order.id)
            raise OrderSaveError("Failed to save order products, changes rolled back") from exc

        ORDER_LINES_SAVED_TOTAL.inc(len(saved))
        _LOGGER.info("Order %s saved with %s rows (%s skipped)", order.id, len(saved), skipped)
        return SaveResult(saved=saved, skipped=skipped)

    async def lines_for_order(self, order_id: int) -> list[OrderLineView]:
        """Regroup stored rows into one editor line per (brand, article, variant)."""

        grouped: dict[tuple[str, str, str], list[OrderProduct]] = {}
        for row in await self.orders.list_lines(order_id):
            product = row.product
            key = (product.brand_id, product.article_key, product.variant_code)
            grouped.setdefault(key, []).append(row)

        lines: list[OrderLineView] = []
        for (brand_id, _, variant_code), rows in grouped.items():
            first = rows[0].product
            quantities = {row.product.size_id: row.quantity for row in rows}
            siblings = await self.matcher.products.list_variant_products(
                brand_id=brand_id,
                article_code=first.article_code,
                variant_code=variant_code,
                only_active=False,
            )
            names = {product.size_id: product.size.name for product in siblings}
            names.update({row.product.size_id: row.product.size.name for row in rows})
            sizes = sort_sizes(ResolvedSize(id=size_id, name=name) for size_id, name in names.items())
            lines.append(
                OrderLineView(
                    article_code=first.article_code,
                    variant_code=variant_code,
                    size_group_id=first.size_group_id,
                    size_group_name=first.size_group.name if first.size_group is not None else None,
                    price_cents=rows[0].price_cents,
                    sizes_quantities=[
                        SizedQuantity(size_id=size.id, size_name=size.name, quantity=quantities.get(size.id, 0))
                        for size in sizes
                    ],
                )
            )
        return lines


# Catalog and order lifecycle --------------------------------------------------------------
class CatalogService:
    def __init__(self, repository: CatalogRepository, events: OrderingEventPublisher | None = None) -> None:
        self.repository = repository
        self.events = events

    async def create_catalog(self, payload: CatalogCreate) -> Catalog:
        if await self.repository.get_brand(payload.brand_id) is None:
            raise BrandNotFound(payload.brand_id)
        if await self.repository.get_catalog_by_code(payload.code) is not None:
            raise DuplicateCatalogError(payload.code)
        return await self.repository.create_catalog(**payload.model_dump(), status="draft")

    async def change_status(self, catalog: Catalog, *, status: str) -> Catalog:
        current = catalog.status
        if status == current:
            return catalog
        if status not in CATALOG_TRANSITIONS.get(current, frozenset()):
            raise InvalidStatusTransition(current, status)

        updated = await self.repository.update_status(catalog, status=status)
        CATALOG_STATUS_CHANGES_TOTAL.labels(status=status).inc()
        _LOGGER.info("Catalog %s moved from %s to %s", catalog.code, current, status)
        if status == "published" and self.events is not None:
            recipients = await self.repository.active_client_user_ids(updated.brand_id)
            await self.events.catalog_published(updated, recipients=recipients)
        return updated


class OrderService:
    def __init__(
        self,
        orders: OrderRepository,
        catalogs: CatalogRepository,
        events: OrderingEventPublisher | None = None,
    ) -> None:
        self.orders = orders
        self.catalogs = catalogs
        self.events = events

    async def create_order(self, client: Client, payload: OrderCreate) -> Order:
        catalog = await self.catalogs.get_catalog(payload.catalog_id)
        brand_ids = {link.brand_id for link in client.brands}
        if catalog is None or catalog.status != "published" or catalog.brand_id not in brand_ids:
            raise CatalogNotFound(payload.catalog_id)
        order = await self.orders.create_order(
            client_id=client.id,
            catalog_id=catalog.id,
            order_type=payload.order_type or catalog.catalog_type,
        )
        _LOGGER.info("Created order %s for client %s", order.order_number, client.id)
        return order

    async def change_status(self, order: Order, *, status: str) -> Order:
        previous = order.status
        if status == previous:
            return order
        updated = await self.orders.update_status(order, status=status)
        if self.events is not None:
            await self.events.order_status_changed(updated, previous_status=previous)
        return updated

    async def delete_order(self, order: Order) -> None:
        if order.status != "draft":
            raise OrderNotEditable("Only draft orders can be deleted")
        await self.orders.delete_order(order)
