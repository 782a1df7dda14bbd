"""
storefront/models.py – Pydantic v2 schemas for the catalog cache and HTTP API.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


# ── Enumerations ──────────────────────────────────────────────────────────────


class CacheNamespace(str, Enum):
    CATEGORIES = "categories"
    PRODUCTS = "products"
    CATEGORY_PRODUCTS = "category_products"
    METADATA = "metadata"


class SortOption(str, Enum):
    DEFAULT = "default"
    PRICE_LOW_HIGH = "price-low-high"
    PRICE_HIGH_LOW = "price-high-low"
    NAME_A_Z = "name-a-z"
    NAME_Z_A = "name-z-a"
    NEWEST = "newest"


class InquiryCategory(str, Enum):
    PRODUCT = "product"
    SERVICE = "service"
    SUPPORT = "support"
    BUSINESS = "business"
    GENERAL = "general"


# ── Catalog ───────────────────────────────────────────────────────────────────


class Subcategory(BaseModel):
    id: str = Field(..., examples=["almirahs"])
    name: str = Field(default="", examples=["Almirahs & Wardrobes"])
    parent_id: str = Field(..., examples=["household"])


class Category(BaseModel):
    id: str = Field(..., examples=["household"])
    name: str = Field(default="", examples=["Household Furniture"])
    description: str = Field(default="", examples=["Essential furniture for your home"])
    image: Optional[str] = Field(default=None)
    subcategories: list[Subcategory] = Field(default_factory=list)


class ListingMetadata(BaseModel):
    count: int
    category: str
    subcategory: Optional[str] = None
    last_fetch: datetime


# ── Responses ─────────────────────────────────────────────────────────────────


class CategoryListResponse(BaseModel):
    categories: list[Category]
    count: int


class ProductListResponse(BaseModel):
    products: list[Any]
    count: int
    category: str
    subcategory: Optional[str] = None


class NamespaceStats(BaseModel):
    size: int
    ttl_seconds: float
    entries: list[str]


class CacheStatsResponse(BaseModel):
    namespaces: dict[str, NamespaceStats]
    inflight: int = 0


class PreloadResponse(BaseModel):
    status: str = "scheduled"


# ── Inquiries ─────────────────────────────────────────────────────────────────


class InquiryRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, examples=["Sita Sharma"])
    email: EmailStr = Field(..., examples=["sita@example.com"])
    phone: str = Field(..., min_length=1, examples=["9800000000"])
    message: str = Field(..., min_length=1, examples=["Do you deliver steel almirahs to Pokhara?"])
    category: InquiryCategory = Field(default=InquiryCategory.GENERAL)

    @field_validator("category", mode="before")
    @classmethod
    def default_blank_category(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return InquiryCategory.GENERAL
        if isinstance(value, str):
            return value.strip().lower()
        return value


class InquiryResponse(BaseModel):
    status: str = "received"
    inquiry: dict[str, Any] = Field(default_factory=dict)


# ── Health ────────────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str
    version: str
    catalog_api_base_url: str


class ReadinessResponse(BaseModel):
    ready: bool
    checks: dict[str, Any]
