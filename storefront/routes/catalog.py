"""
storefront/routes/catalog.py – category and product endpoints backed by the DataCache.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from storefront.dependencies import get_data_cache
from storefront.models import (
    CategoryListResponse,
    ProductListResponse,
    SortOption,
)
from storefront.services.cache import DataCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Catalog"])


# ── helpers ───────────────────────────────────────────────────────────────────


def _price(product: Any) -> float:
    try:
        return float(product.get("price") or 0)
    except (TypeError, ValueError):
        return 0.0


def _name(product: Any) -> str:
    return str(product.get("name") or "").lower()


def _matches(product: Any, term: str) -> bool:
    for field in ("name", "description"):
        value = product.get(field)
        if isinstance(value, str) and term in value.lower():
            return True
    return False


def _search_and_sort(products: list[Any], search: Optional[str], sort: SortOption) -> list[Any]:
    """Filter and order a cached listing. Returns a new list; the cache is untouched."""
    items = [p for p in products if isinstance(p, dict)]

    if search:
        term = search.strip().lower()
        items = [p for p in items if _matches(p, term)]

    if sort == SortOption.PRICE_LOW_HIGH:
        items.sort(key=_price)
    elif sort == SortOption.PRICE_HIGH_LOW:
        items.sort(key=_price, reverse=True)
    elif sort == SortOption.NAME_A_Z:
        items.sort(key=_name)
    elif sort == SortOption.NAME_Z_A:
        items.sort(key=_name, reverse=True)
    elif sort == SortOption.NEWEST:
        # ISO-8601 strings order chronologically
        items.sort(key=lambda p: str(p.get("dateAdded") or p.get("createdAt") or ""), reverse=True)

    return items


# ── Endpoints ─────────────────────────────────────────────────────────────────


@router.get(
    "/categories",
    response_model=CategoryListResponse,
    summary="List categories",
    description=(
        "Returns every category with its subcategories. Served from cache when "
        "fresh; falls back to stale or bundled data when the catalog API is down."
    ),
)
async def list_categories(
    refresh: bool = Query(default=False, description="Bypass a fresh cache entry."),
    cache: DataCache = Depends(get_data_cache),
) -> CategoryListResponse:
    categories = await cache.get_categories(force_refresh=refresh)
    return CategoryListResponse(categories=categories, count=len(categories))


@router.get(
    "/products",
    response_model=ProductListResponse,
    summary="List products",
    description=(
        "Returns the product listing for a category (or `all`), optionally "
        "narrowed by subcategory. `search` and `sort` are applied on top of the "
        "cached listing and never affect what is cached."
    ),
)
async def list_products(
    category: str = Query(default="all", examples=["household"]),
    subcategory: Optional[str] = Query(default=None, examples=["almirahs"]),
    refresh: bool = Query(default=False),
    search: Optional[str] = Query(default=None, max_length=200),
    sort: SortOption = Query(default=SortOption.DEFAULT),
    cache: DataCache = Depends(get_data_cache),
) -> ProductListResponse:
    category = category or "all"
    products = await cache.get_products(category, subcategory or None, force_refresh=refresh)

    if search or sort != SortOption.DEFAULT:
        products = _search_and_sort(products, search, sort)

    return ProductListResponse(
        products=products,
        count=len(products),
        category=category,
        subcategory=subcategory or None,
    )


@router.get(
    "/products/{product_id}",
    summary="Get one product",
    responses={404: {"description": "No source knows this product."}},
)
async def get_product(
    product_id: str,
    refresh: bool = Query(default=False),
    cache: DataCache = Depends(get_data_cache),
) -> dict[str, Any]:
    product = await cache.get_product(product_id, force_refresh=refresh)
    if product is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product {product_id!r} not found.",
        )
    return product
