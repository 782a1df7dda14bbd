"""
storefront/dependencies.py – FastAPI dependencies for the shared per-process services.

Both objects are created in the application lifespan and live on `app.state`.
Tests swap them out through `app.dependency_overrides`.
"""
from __future__ import annotations

from fastapi import Request

from storefront.services.cache import DataCache
from storefront.services.remote import CatalogAPIClient


def get_data_cache(request: Request) -> DataCache:
    return request.app.state.data_cache


def get_catalog_client(request: Request) -> CatalogAPIClient:
    return request.app.state.catalog_client
