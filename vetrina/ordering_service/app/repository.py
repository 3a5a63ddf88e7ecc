"""Data access helpers for the ordering service."""

from __future__ import annotations

import time
from typing import Any, Iterable, Sequence
from uuid import uuid4

from sqlalchemy import Select, and_, delete, func, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    Brand,
    Catalog,
    Client,
    ClientBrand,
    Order,
    OrderProduct,
    Product,
    Size,
    SizeGroup,
    SizeGroupSize,
)
from .normalization import article_key


class CatalogRepository:
    """Brands, client companies and seasonal catalogs."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_brand(self, *, brand_id: str, name: str, logo_url: str | None) -> Brand:
        brand = Brand(id=brand_id, name=name, logo_url=logo_url)
        self.session.add(brand)
        await self.session.flush()
        return brand

    async def get_brand(self, brand_id: str) -> Brand | None:
        return await self.session.get(Brand, brand_id)

    async def list_brands(self) -> list[Brand]:
        result = await self.session.execute(select(Brand).order_by(Brand.name))
        return list(result.scalars())

    async def create_client(
        self,
        *,
        user_id: int,
        company_name: str,
        status: str,
        brand_ids: Iterable[str] = (),
    ) -> Client:
        client = Client(
            user_id=user_id,
            company_name=company_name,
            status=status,
            brands=[ClientBrand(brand_id=brand_id) for brand_id in brand_ids],
        )
        self.session.add(client)
        await self.session.flush()
        await self.session.refresh(client, attribute_names=["brands"])
        return client

    async def get_client_by_user(self, user_id: int) -> Client | None:
        result = await self.session.execute(select(Client).where(Client.user_id == user_id))
        return result.scalar_one_or_none()

    async def active_client_user_ids(self, brand_id: str) -> list[int]:
        result = await self.session.execute(
            select(Client.user_id)
            .join(ClientBrand, ClientBrand.client_id == Client.id)
            .where(ClientBrand.brand_id == brand_id, Client.status == "active")
            .distinct()
            .order_by(Client.user_id)
        )
        return list(result.scalars())

    async def create_catalog(self, **fields: Any) -> Catalog:
        catalog = Catalog(**fields)
        self.session.add(catalog)
        await self.session.flush()
        return await self._reload_catalog(catalog.id)

    async def get_catalog(self, catalog_id: int) -> Catalog | None:
        result = await self.session.execute(select(Catalog).where(Catalog.id == catalog_id))
        return result.scalar_one_or_none()

    async def get_catalog_by_code(self, code: str) -> Catalog | None:
        result = await self.session.execute(select(Catalog).where(Catalog.code == code))
        return result.scalar_one_or_none()

    async def list_catalogs(
        self,
        *,
        client_id: int | None = None,
        status: str | None = None,
        brand_id: str | None = None,
    ) -> list[Catalog]:
        query: Select[tuple[Catalog]] = select(Catalog)
        if client_id is not None:
            query = query.join(ClientBrand, ClientBrand.brand_id == Catalog.brand_id).where(
                ClientBrand.client_id == client_id
            )
        if status is not None:
            query = query.where(Catalog.status == status)
        if brand_id is not None:
            query = query.where(Catalog.brand_id == brand_id)
        result = await self.session.execute(query.order_by(Catalog.created_at.desc(), Catalog.id.desc()))
        return list(result.scalars().unique())

    async def update_status(self, catalog: Catalog, *, status: str) -> Catalog:
        catalog.status = status
        await self.session.flush()
        await self.session.refresh(catalog, attribute_names=["updated_at"])
        return catalog

    async def _reload_catalog(self, catalog_id: int) -> Catalog:
        result = await self.session.execute(
            select(Catalog).where(Catalog.id == catalog_id).execution_options(populate_existing=True)
        )
        return result.scalar_one()


class SizeRepository:
    """Sizes and size groups."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_size(self, name: str) -> Size:
        size = Size(name=name)
        self.session.add(size)
        await self.session.flush()
        return size

    async def get_size_by_name(self, name: str) -> Size | None:
        result = await self.session.execute(select(Size).where(func.upper(Size.name) == name.upper()))
        return result.scalar_one_or_none()

    async def list_sizes(self) -> list[Size]:
        result = await self.session.execute(select(Size).order_by(Size.name))
        return list(result.scalars())

    async def count_sizes(self, size_ids: Sequence[int]) -> int:
        if not size_ids:
            return 0
        result = await self.session.execute(select(func.count(Size.id)).where(Size.id.in_(size_ids)))
        return result.scalar_one()

    async def list_size_groups(self) -> list[SizeGroup]:
        result = await self.session.execute(select(SizeGroup).order_by(SizeGroup.name))
        return list(result.scalars().unique())

    async def get_size_group(self, size_group_id: int) -> SizeGroup | None:
        result = await self.session.execute(select(SizeGroup).where(SizeGroup.id == size_group_id))
        return result.scalar_one_or_none()

    async def find_size_group_by_name(self, name: str, *, exclude_id: int | None = None) -> SizeGroup | None:
        """Case and space insensitive lookup used to keep group names unique."""

        squashed = name.replace(" ", "").lower()
        query = select(SizeGroup).where(func.lower(func.replace(SizeGroup.name, " ", "")) == squashed)
        if exclude_id is not None:
            query = query.where(SizeGroup.id != exclude_id)
        result = await self.session.execute(query)
        return result.scalars().first()

    async def create_size_group(self, *, name: str, description: str | None, size_ids: Sequence[int]) -> SizeGroup:
        group = SizeGroup(name=name, description=description)
        self.session.add(group)
        await self.session.flush()
        await self._replace_members(group, size_ids)
        return group

    async def update_size_group(
        self,
        group: SizeGroup,
        *,
        name: str,
        description: str | None,
        size_ids: Sequence[int],
    ) -> SizeGroup:
        group.name = name
        group.description = description
        await self.session.flush()
        await self._replace_members(group, size_ids)
        return group

    async def delete_size_group(self, group: SizeGroup) -> None:
        await self.session.delete(group)
        await self.session.flush()

    async def list_group_sizes(self, size_group_id: int) -> list[tuple[int, str]]:
        result = await self.session.execute(
            select(Size.id, Size.name)
            .join(SizeGroupSize, SizeGroupSize.size_id == Size.id)
            .where(SizeGroupSize.size_group_id == size_group_id)
        )
        return [(row.id, row.name) for row in result]

    async def _replace_members(self, group: SizeGroup, size_ids: Sequence[int]) -> None:
        await self.session.execute(delete(SizeGroupSize).where(SizeGroupSize.size_group_id == group.id))
        unique_ids = list(dict.fromkeys(size_ids))
        if unique_ids:
            await self.session.execute(
                insert(SizeGroupSize),
                [{"size_group_id": group.id, "size_id": size_id} for size_id in unique_ids],
            )
        await self.session.refresh(group, attribute_names=["members"])


class ProductRepository:
    """Sized products addressed by (article, variant, size, brand)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

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
        product = Product(
            article_code=article_code,
            article_key=article_key(article_code),
            variant_code=variant_code,
            size_id=size_id,
            size_group_id=size_group_id,
            brand_id=brand_id,
            wholesale_price_cents=wholesale_price_cents,
            retail_price_cents=retail_price_cents,
            status=status,
        )
        self.session.add(product)
        await self.session.flush()
        return product

    async def get_product(self, product_id: int) -> Product | None:
        result = await self.session.execute(
            select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def reload_product(self, product_id: int) -> Product:
        """Re-read a product just written in this session; raises NoResultFound if it is gone."""

        result = await self.session.execute(
            select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def find_by_key(
        self,
        *,
        article_code: str,
        variant_code: str,
        size_id: int,
        brand_id: str | None,
        exclude_id: int | None = None,
    ) -> Product | None:
        filters = [
            Product.article_key == article_key(article_code),
            Product.variant_code == variant_code,
            Product.size_id == size_id,
        ]
        if brand_id is not None:
            filters.append(Product.brand_id == brand_id)
        if exclude_id is not None:
            filters.append(Product.id != exclude_id)
        result = await self.session.execute(select(Product).where(and_(*filters)).order_by(Product.id))
        return result.scalars().first()

    async def list_products(
        self,
        *,
        page: int,
        page_size: int | None,
        search: str | None,
        status: str | None,
        brand: str | None,
    ) -> tuple[list[Product], int]:
        filters = []
        if search:
            pattern = f"%{search}%"
            key_pattern = f"%{article_key(search)}%"
            filters.append(
                or_(
                    Product.article_code.ilike(pattern),
                    Product.article_key.like(key_pattern),
                    Product.variant_code.ilike(pattern),
                    Brand.name.ilike(pattern),
                )
            )
        if status:
            filters.append(Product.status == status)
        if brand:
            filters.append(Brand.name == brand)

        base: Select[tuple[Product]] = select(Product).join(Brand, Brand.id == Product.brand_id)
        count: Select[tuple[int]] = select(func.count(Product.id)).join(Brand, Brand.id == Product.brand_id)
        if filters:
            clause = and_(*filters)
            base = base.where(clause)
            count = count.where(clause)

        total = (await self.session.execute(count)).scalar_one()
        base = base.order_by(
            Product.created_at.desc(), Product.article_code, Product.variant_code, Product.id
        )
        if page_size is not None:
            base = base.offset((page - 1) * page_size).limit(page_size)
        result = await self.session.execute(base)
        return list(result.scalars().unique()), total

    async def update_product(self, product: Product, updates: dict[str, Any]) -> Product:
        for key, value in updates.items():
            setattr(product, key, value)
        if "article_code" in updates:
            product.article_key = article_key(product.article_code)
        await self.session.flush()
        return await self.reload_product(product.id)

    async def delete_product(self, product: Product) -> None:
        await self.session.delete(product)
        await self.session.flush()

    async def search_variants(
        self,
        *,
        brand_id: str,
        query: str,
        variant_code: str | None,
        limit: int,
    ) -> list[tuple[str, str]]:
        """Distinct (article, variant) pairs of active products matching ``query``."""

        filters = [
            Product.status == "active",
            Product.brand_id == brand_id,
            or_(
                Product.article_code.ilike(f"%{query}%"),
                Product.article_key.like(f"%{article_key(query)}%"),
            ),
        ]
        if variant_code:
            filters.append(Product.variant_code == variant_code)
        result = await self.session.execute(
            select(Product.article_code, Product.variant_code)
            .where(and_(*filters))
            .distinct()
            .order_by(Product.article_code, Product.variant_code)
            .limit(limit)
        )
        return [(row.article_code, row.variant_code) for row in result]

    async def list_variant_products(
        self,
        *,
        brand_id: str,
        article_code: str,
        variant_code: str,
        only_active: bool = True,
    ) -> list[Product]:
        query = select(Product).where(
            Product.brand_id == brand_id,
            Product.article_key == article_key(article_code),
            Product.variant_code == variant_code,
        )
        if only_active:
            query = query.where(Product.status == "active")
        result = await self.session.execute(query.order_by(Product.id))
        return list(result.scalars().unique())

    async def references_exist(self, *, brand_id: str, size_id: int, size_group_id: int | None) -> bool:
        """True when the brand, size and (optional) size group a product points at all exist."""

        if await self.session.get(Brand, brand_id) is None:
            return False
        if await self.session.get(Size, size_id) is None:
            return False
        return size_group_id is None or await self.session.get(SizeGroup, size_group_id) is not None

    async def list_group(
        self,
        *,
        article_code: str,
        variant_code: str,
        size_group_id: int,
        brand_id: str,
        status: str | None = None,
    ) -> list[Product]:
        """Every size of one article/variant/size group of a brand."""

        query = select(Product).where(
            Product.article_key == article_key(article_code),
            Product.variant_code == variant_code,
            Product.size_group_id == size_group_id,
            Product.brand_id == brand_id,
        )
        if status is not None:
            query = query.where(Product.status == status)
        result = await self.session.execute(query.order_by(Product.id))
        return list(result.scalars().unique())

    async def update_group(self, products: Sequence[Product], updates: dict[str, Any]) -> None:
        for product in products:
            for key, value in updates.items():
                setattr(product, key, value)
            if "article_code" in updates:
                product.article_key = article_key(product.article_code)
        await self.session.flush()

    async def ordered_product_ids(self, product_ids: Sequence[int]) -> set[int]:
        if not product_ids:
            return set()
        result = await self.session.execute(
            select(OrderProduct.product_id).where(OrderProduct.product_id.in_(product_ids)).distinct()
        )
        return set(result.scalars())

    async def delete_products(self, product_ids: Sequence[int]) -> int:
        if not product_ids:
            return 0
        result = await self.session.execute(delete(Product).where(Product.id.in_(product_ids)))
        return result.rowcount or 0


class OrderRepository:
    """Orders and their OrderProduct rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_order(self, *, client_id: int, catalog_id: int, order_type: str | None) -> Order:
        order = Order(
            order_number=uuid4().hex[:32],
            client_id=client_id,
            catalog_id=catalog_id,
            order_type=order_type,
            status="draft",
        )
        self.session.add(order)
        await self.session.flush()
        order.order_number = f"ORD{int(time.time() * 1000)}{order.id}"
        await self.session.flush()
        return await self._reload(order.id)

    async def get_order(self, order_id: int) -> Order | None:
        result = await self.session.execute(select(Order).where(Order.id == order_id))
        return result.scalar_one_or_none()

    async def get_client_order(self, order_id: int, client_id: int) -> Order | None:
        result = await self.session.execute(
            select(Order).where(Order.id == order_id, Order.client_id == client_id)
        )
        return result.scalar_one_or_none()

    async def list_client_orders(self, client_id: int) -> list[tuple[Order, int]]:
        totals = (
            select(
                OrderProduct.order_id.label("order_id"),
                func.sum(OrderProduct.quantity * OrderProduct.price_cents).label("total_cents"),
            )
            .group_by(OrderProduct.order_id)
            .subquery()
        )
        result = await self.session.execute(
            select(Order, func.coalesce(totals.c.total_cents, 0))
            .outerjoin(totals, totals.c.order_id == Order.id)
            .where(Order.client_id == client_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return [(order, int(total)) for order, total in result.unique()]

    async def total_cents(self, order_id: int) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(OrderProduct.quantity * OrderProduct.price_cents), 0)).where(
                OrderProduct.order_id == order_id
            )
        )
        return int(result.scalar_one())

    async def update_status(self, order: Order, *, status: str) -> Order:
        order.status = status
        await self.session.flush()
        await self.session.refresh(order, attribute_names=["updated_at"])
        return order

    async def delete_order(self, order: Order) -> None:
        await self.delete_lines(order.id)
        await self.session.delete(order)
        await self.session.flush()

    async def delete_lines(self, order_id: int) -> int:
        result = await self.session.execute(delete(OrderProduct).where(OrderProduct.order_id == order_id))
        return result.rowcount or 0

    async def insert_lines(self, order_id: int, rows: Sequence[dict[str, int]]) -> list[OrderProduct]:
        """Bulk insert ``{product_id, quantity, price_cents}`` rows for one order."""

        if not rows:
            return []
        await self.session.execute(
            insert(OrderProduct),
            [
                {
                    "order_id": order_id,
                    "product_id": row["product_id"],
                    "quantity": row["quantity"],
                    "price_cents": row["price_cents"],
                }
                for row in rows
            ],
        )
        return await self.list_lines(order_id)

    async def list_lines(self, order_id: int) -> list[OrderProduct]:
        result = await self.session.execute(
            select(OrderProduct)
            .where(OrderProduct.order_id == order_id)
            .order_by(OrderProduct.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().unique())

    async def _reload(self, order_id: int) -> Order:
        result = await self.session.execute(
            select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        )
        return result.scalar_one()
