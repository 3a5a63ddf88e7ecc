"""Pydantic schemas for the ordering service."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator

from .normalization import normalize_article_code, normalize_variant_code

ProductStatus = Literal["active", "inactive"]
CatalogStatus = Literal["draft", "published", "archived"]
OrderStatus = Literal["draft", "submitted"]

Money = Decimal


def _strip_required(value: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        msg = "value must be non-empty"
        raise ValueError(msg)
    return cleaned


# Brands / sizes ---------------------------------------------------------------------------
class BrandCreate(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    logo_url: str | None = Field(default=None, max_length=1024)

    @field_validator("id", "name")
    @classmethod
    def _strip(cls, value: str) -> str:
        return _strip_required(value)


class BrandResponse(BaseModel):
    id: str
    name: str
    logo_url: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SizeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=32)

    @field_validator("name")
    @classmethod
    def _upper(cls, value: str) -> str:
        return _strip_required(value).upper()


class SizeResponse(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


class ResolvedSizeResponse(BaseModel):
    id: int
    name: str
    product_id: int | None = None

    model_config = ConfigDict(from_attributes=True)


class SizeGroupPayload(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    description: str | None = None
    sizes: list[PositiveInt] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        return _strip_required(value).upper()


class SizeGroupResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    sizes: list[SizeResponse]


# Catalogs ---------------------------------------------------------------------------------
class CatalogCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    name: str | None = Field(default=None, max_length=255)
    brand_id: str = Field(min_length=1, max_length=64)
    catalog_type: str = Field(min_length=1, max_length=64)
    season: str = Field(min_length=1, max_length=64)
    year: int = Field(ge=2000, le=2100)
    order_start_date: date | None = None
    order_end_date: date | None = None
    delivery_date: str | None = Field(default=None, max_length=64)
    note_html: str | None = None
    condition_html: str | None = None
    cover_url: str | None = Field(default=None, max_length=1024)

    @field_validator("code", "season")
    @classmethod
    def _upper(cls, value: str) -> str:
        return _strip_required(value).upper()


class CatalogStatusUpdate(BaseModel):
    status: CatalogStatus


class CatalogResponse(BaseModel):
    id: int
    code: str
    name: str | None
    brand_id: str
    brand_name: str
    catalog_type: str
    season: str
    year: int
    order_start_date: date | None
    order_end_date: date | None
    delivery_date: str | None
    note_html: str | None
    condition_html: str | None
    cover_url: str | None
    status: CatalogStatus
    created_at: datetime
    updated_at: datetime


# Products ---------------------------------------------------------------------------------
class ProductPayload(BaseModel):
    article_code: str = Field(min_length=1, max_length=128)
    variant_code: str = Field(min_length=1, max_length=64)
    size_id: PositiveInt
    size_group_id: PositiveInt
    brand_id: str = Field(min_length=1, max_length=64)
    wholesale_price: Money = Field(gt=Decimal("0"), max_digits=12, decimal_places=2)
    retail_price: Money | None = Field(default=None, gt=Decimal("0"), max_digits=12, decimal_places=2)
    status: ProductStatus = "active"

    @field_validator("article_code")
    @classmethod
    def _normalize_article(cls, value: str) -> str:
        normalized = normalize_article_code(value)
        if not normalized.strip("-"):
            msg = "article code must contain at least one character besides separators"
            raise ValueError(msg)
        return normalized

    @field_validator("variant_code")
    @classmethod
    def _strip_variant(cls, value: str) -> str:
        return _strip_required(value)

    @field_validator("retail_price", mode="before")
    @classmethod
    def _empty_retail_price(cls, value: object) -> object:
        if value == "":
            return None
        return value


class ProductResponse(BaseModel):
    id: int
    article_code: str
    variant_code: str
    size_id: int
    size_name: str | None
    size_group_id: int | None
    brand_id: str
    brand_name: str | None
    wholesale_price: Money
    retail_price: Money | None
    status: ProductStatus
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    page: int
    page_size: int = Field(alias="pageSize")
    total: int
    total_pages: int = Field(alias="totalPages")

    model_config = ConfigDict(populate_by_name=True)


class ProductListResponse(BaseModel):
    data: list[ProductResponse]
    pagination: Pagination


class ProductCheckRequest(BaseModel):
    article_code: str = Field(min_length=1)
    variant_code: str = Field(min_length=1)
    size_id: PositiveInt
    brand_id: str | None = None


class ProductCheckResponse(BaseModel):
    exists: bool
    product_id: int | None


class ProductImportRequest(BaseModel):
    """Rows are validated one by one so a bad row only fails itself."""

    products: list[dict[str, Any]]


ImportStatus = Literal["created", "duplicate", "error"]


class ProductImportResult(BaseModel):
    index: int
    status: ImportStatus
    article_code: str | None = None
    variant_code: str | None = None
    size_id: int | None = None
    product_id: int | None = None
    message: str | None = None


class ProductImportResponse(BaseModel):
    created: int
    duplicates: int
    errors: int
    results: list[ProductImportResult]


class ProductGroupKey(BaseModel):
    """All sizes of one article/variant in one size group of a brand."""

    article_code: str = Field(min_length=1, max_length=128)
    variant_code: str = Field(min_length=1, max_length=64)
    size_group_id: PositiveInt
    brand_id: str = Field(min_length=1, max_length=64)

    @field_validator("article_code")
    @classmethod
    def _normalize_article(cls, value: str) -> str:
        return normalize_article_code(value)

    @field_validator("variant_code")
    @classmethod
    def _strip_variant(cls, value: str) -> str:
        return _strip_required(value)


class ProductGroupChanges(BaseModel):
    article_code: str | None = Field(default=None, min_length=1, max_length=128)
    variant_code: str | None = Field(default=None, min_length=1, max_length=64)
    wholesale_price: Money | None = Field(default=None, gt=Decimal("0"), max_digits=12, decimal_places=2)
    retail_price: Money | None = Field(default=None, gt=Decimal("0"), max_digits=12, decimal_places=2)
    status: ProductStatus | None = None

    @field_validator("article_code")
    @classmethod
    def _normalize_article(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = normalize_article_code(value)
        if not normalized.strip("-"):
            msg = "article code must contain at least one character besides separators"
            raise ValueError(msg)
        return normalized

    @field_validator("variant_code")
    @classmethod
    def _strip_variant(cls, value: str | None) -> str | None:
        return _strip_required(value) if value is not None else None


class ProductGroupUpdateRequest(ProductGroupKey):
    updates: ProductGroupChanges


class ProductGroupDeleteRequest(ProductGroupKey):
    status: ProductStatus


class ProductGroupUpdateResponse(BaseModel):
    message: str
    updated_count: int


class ProductGroupDeleteResponse(BaseModel):
    message: str
    deleted_count: int


class ProductSuggestion(BaseModel):
    article_code: str
    variant_code: str
    size_group_id: int | None
    brand_id: str
    wholesale_price: Money
    retail_price: Money | None
    sizes: list[ResolvedSizeResponse]


# Orders -----------------------------------------------------------------------------------
class OrderCreate(BaseModel):
    catalog_id: PositiveInt
    order_type: str | None = Field(default=None, max_length=64)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderCatalogSummary(BaseModel):
    id: int
    name: str | None
    code: str
    catalog_type: str
    season: str
    year: int
    brand: BrandResponse


class OrderResponse(BaseModel):
    id: int
    order_number: str
    order_type: str | None
    status: OrderStatus
    client_id: int
    total_amount: Money
    catalog: OrderCatalogSummary
    created_at: datetime
    updated_at: datetime


class OrderProductRow(BaseModel):
    """One expanded, sized row posted by the order editor."""

    article_code: str | None = None
    variant_code: str | None = None
    size_id: int | None = None
    size_group_id: int | None = None
    brand_id: str | None = None
    quantity: int = Field(default=0, ge=0)
    price: Money = Field(default=Decimal("0"), ge=Decimal("0"), max_digits=12, decimal_places=2)

    @field_validator("variant_code")
    @classmethod
    def _strip_variant(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_variant_code(value) or None


class OrderProductsSave(BaseModel):
    products: list[OrderProductRow] = Field(min_length=1)


class SavedOrderProduct(BaseModel):
    product_id: int
    quantity: int
    price: Money


class OrderProductsSaveResponse(BaseModel):
    message: str
    saved: list[SavedOrderProduct]
    skipped: int


class SizeQuantity(BaseModel):
    size_id: int
    size_name: str
    quantity: int


class OrderLine(BaseModel):
    article_code: str
    variant_code: str
    size_group_id: int | None
    size_group_name: str | None
    price: Money
    sizes_quantities: list[SizeQuantity]


class OrderLinesResponse(BaseModel):
    lines: list[OrderLine]
