"""
storefront/routes/health.py – liveness and readiness endpoints.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from storefront.config import settings
from storefront.dependencies import get_catalog_client
from storefront.models import HealthResponse, ReadinessResponse
from storefront.services.remote import CatalogAPIClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get(
    "/healthz",
    response_model=HealthResponse,
    summary="Liveness probe",
    description="Returns 200 as long as the application process is running.",
)
async def healthz() -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=settings.app_version,
        catalog_api_base_url=settings.catalog_api_base_url,
    )


@router.get(
    "/readyz",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    description=(
        "Reports whether the remote catalog API answers its health check. "
        "The service still answers catalog requests from cache or bundled "
        "data when it does not."
    ),
)
async def readyz(client: CatalogAPIClient = Depends(get_catalog_client)) -> ReadinessResponse:
    checks: dict = {}

    api_ok = await client.check_health()
    checks["catalog_api_healthy"] = api_ok
    checks["catalog_api_base_url"] = client.base_url

    return ReadinessResponse(ready=api_ok, checks=checks)
