"""
storefront/routes/cache_admin.py – cache statistics, invalidation and preload hooks.

Admin write paths call DELETE /v1/cache/{namespace} after changing catalog data
so the next read goes back to the catalog API.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from storefront.dependencies import get_data_cache
from storefront.models import CacheStatsResponse, PreloadResponse
from storefront.services.cache import DataCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/cache", tags=["Cache"])


@router.get(
    "/stats",
    response_model=CacheStatsResponse,
    summary="Cache statistics",
    description="Per-namespace entry counts, TTLs and keys, plus the number of in-flight fetches.",
)
async def cache_stats(cache: DataCache = Depends(get_data_cache)) -> CacheStatsResponse:
    return CacheStatsResponse.model_validate(cache.stats())


@router.delete(
    "/{namespace}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Invalidate cache entries",
    responses={404: {"description": "Unknown namespace."}},
)
async def clear_cache(
    namespace: str,
    key: Optional[str] = Query(default=None, description="Drop only this key."),
    cache: DataCache = Depends(get_data_cache),
) -> Response:
    try:
        cache.clear_cache(namespace, key)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown cache namespace {namespace!r}.",
        ) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/preload",
    response_model=PreloadResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Warm the cache",
    description="Starts a background preload of the first few categories' listings and returns immediately.",
)
async def preload(cache: DataCache = Depends(get_data_cache)) -> PreloadResponse:
    cache.schedule_preload(delay=0)
    return PreloadResponse()
