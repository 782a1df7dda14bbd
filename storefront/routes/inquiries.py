"""
storefront/routes/inquiries.py – contact form submission.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from storefront.dependencies import get_catalog_client
from storefront.models import InquiryRequest, InquiryResponse
from storefront.services.remote import CatalogAPIClient, RemoteSourceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/inquiries", tags=["Inquiries"])


@router.post(
    "",
    response_model=InquiryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a contact inquiry",
    responses={
        201: {"description": "Inquiry accepted by the catalog API."},
        422: {"description": "Validation error – missing or blank required fields."},
        502: {"description": "Catalog API error – the inquiry was not stored."},
    },
)
async def create_inquiry(
    payload: InquiryRequest,
    client: CatalogAPIClient = Depends(get_catalog_client),
) -> InquiryResponse:
    """Forward a validated contact form to the catalog API.

    Requires **name**, **email**, **phone** and **message**. A blank
    **category** is stored as `general`.
    """
    try:
        body = await client.create_inquiry(payload.model_dump(mode="json"))
    except RemoteSourceError as exc:
        logger.error("Inquiry forwarding failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Catalog API error: {exc}",
        ) from exc

    inquiry: dict[str, Any] = body if isinstance(body, dict) else {}
    return InquiryResponse(inquiry=inquiry)
