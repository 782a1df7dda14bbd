"""
tests/test_routes.py – API tests for the catalog, cache, inquiry and health endpoints.

These tests use FastAPI's TestClient and swap the DataCache and catalog client
through dependency overrides, so no real catalog API is contacted.
"""
from __future__ import annotations

from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from storefront.config import settings
from storefront.dependencies import get_catalog_client, get_data_cache
from storefront.main import app
from storefront.models import CacheNamespace
from storefront.services.cache import CATEGORIES_KEY
from storefront.services.remote import RemoteSourceError

PRODUCTS = [
    {"id": "chr-1", "name": "Dining Steel Chair", "description": "Cushioned seat", "price": 3500,
     "dateAdded": "2025-01-10T00:00:00Z"},
    {"id": "off-chr-1", "name": "Executive Office Chair", "description": "High back", "price": "12000",
     "dateAdded": "2025-03-01T00:00:00Z"},
    {"id": "tbl-1", "name": "Coffee Table", "description": "Round top", "price": 8000,
     "dateAdded": "2024-12-01T00:00:00Z"},
]


class FakeCatalogClient:
    """Stands in for CatalogAPIClient on the inquiry and readiness paths."""

    base_url = "http://catalog.test/api"

    def __init__(self) -> None:
        self.healthy = True
        self.inquiries: list[dict[str, Any]] = []
        self.error: Optional[Exception] = None

    async def create_inquiry(self, payload: dict[str, Any]) -> Any:
        if self.error is not None:
            raise self.error
        self.inquiries.append(payload)
        return {"_id": "inq-1", **payload}

    async def check_health(self) -> bool:
        return self.healthy


@pytest.fixture
def catalog_client() -> FakeCatalogClient:
    return FakeCatalogClient()


@pytest.fixture
def client(monkeypatch, cache, catalog_client):
    monkeypatch.setattr(settings, "preload_on_startup", False)
    app.dependency_overrides[get_data_cache] = lambda: cache
    app.dependency_overrides[get_catalog_client] = lambda: catalog_client
    with TestClient(app) as c:
        yield c


@pytest.fixture(autouse=True)
def _clear_dependency_overrides():
    """Ensure dependency overrides are reset after every test."""
    yield
    app.dependency_overrides.clear()


# ── Categories ────────────────────────────────────────────────────────────────


def test_list_categories(client: TestClient, fake_remote):
    fake_remote.responses["categories"] = [
        {"_id": "household", "name": "Household Furniture", "subcategories": [{"_id": "beds", "name": "Beds"}]}
    ]

    resp = client.get("/v1/categories")

    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 1
    assert body["categories"][0]["subcategories"] == [
        {"id": "beds", "name": "Beds", "parent_id": "household"}
    ]


def test_list_categories_serves_fallback_when_api_down(client: TestClient, fake_remote):
    fake_remote.responses["categories"] = RemoteSourceError("down")

    resp = client.get("/v1/categories")

    assert resp.status_code == 200
    assert [c["id"] for c in resp.json()["categories"]] == ["household", "office", "commercial"]


def test_refresh_flag_bypasses_cache(client: TestClient, fake_remote):
    fake_remote.responses["categories"] = [{"_id": "c1"}]

    client.get("/v1/categories")
    client.get("/v1/categories")
    client.get("/v1/categories", params={"refresh": "true"})

    assert fake_remote.count("categories") == 2


# ── Products ──────────────────────────────────────────────────────────────────


def test_list_products_passes_filters_to_cache(client: TestClient, fake_remote):
    fake_remote.responses["products"] = {"products": PRODUCTS}

    resp = client.get("/v1/products", params={"category": "household", "subcategory": "chairs"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 3
    assert body["category"] == "household"
    assert body["subcategory"] == "chairs"
    assert fake_remote.calls == [("products", "household", "chairs")]


def test_list_products_defaults_to_all(client: TestClient, fake_remote):
    fake_remote.responses["products"] = []

    resp = client.get("/v1/products")

    assert resp.json() == {"products": [], "count": 0, "category": "all", "subcategory": None}
    assert fake_remote.calls == [("products", "all", None)]


def test_list_products_empty_on_total_failure(client: TestClient, fake_remote):
    fake_remote.responses["products"] = RemoteSourceError("down")

    resp = client.get("/v1/products", params={"category": "office"})

    assert resp.status_code == 200
    assert resp.json()["products"] == []


def test_search_and_sort_do_not_touch_cache(client: TestClient, fake_remote, cache):
    fake_remote.responses["products"] = PRODUCTS

    resp = client.get("/v1/products", params={"search": "CHAIR", "sort": "price-high-low"})

    assert [p["id"] for p in resp.json()["products"]] == ["off-chr-1", "chr-1"]
    # The cached listing keeps the API order and the search did not change the key.
    resp = client.get("/v1/products")
    assert [p["id"] for p in resp.json()["products"]] == ["chr-1", "off-chr-1", "tbl-1"]
    assert fake_remote.count("products") == 1


@pytest.mark.parametrize(
    "sort, expected",
    [
        ("price-low-high", ["chr-1", "tbl-1", "off-chr-1"]),
        ("name-a-z", ["tbl-1", "chr-1", "off-chr-1"]),
        ("name-z-a", ["off-chr-1", "chr-1", "tbl-1"]),
        ("newest", ["off-chr-1", "chr-1", "tbl-1"]),
    ],
)
def test_sort_options(client: TestClient, fake_remote, sort, expected):
    fake_remote.responses["products"] = PRODUCTS

    resp = client.get("/v1/products", params={"sort": sort})

    assert [p["id"] for p in resp.json()["products"]] == expected


def test_unknown_sort_is_rejected(client: TestClient):
    resp = client.get("/v1/products", params={"sort": "random"})
    assert resp.status_code == 422


def test_get_product(client: TestClient, fake_remote):
    fake_remote.responses["product"] = {"product": {"id": "bed-1", "name": "Queen Size Steel Bed"}}

    resp = client.get("/v1/products/bed-1")

    assert resp.status_code == 200
    assert resp.json()["name"] == "Queen Size Steel Bed"


def test_get_product_from_fallback(client: TestClient, fake_remote):
    fake_remote.responses["product"] = RemoteSourceError("down")

    resp = client.get("/v1/products/alm-1")

    assert resp.status_code == 200
    assert resp.json()["id"] == "alm-1"


def test_get_product_404(client: TestClient, fake_remote):
    fake_remote.responses["product"] = RemoteSourceError("not found", status_code=404)

    resp = client.get("/v1/products/nope")

    assert resp.status_code == 404


# ── Cache administration ──────────────────────────────────────────────────────


def test_cache_stats(client: TestClient, fake_remote):
    fake_remote.responses["categories"] = [{"_id": "c1"}]
    client.get("/v1/categories")

    resp = client.get("/v1/cache/stats")

    assert resp.status_code == 200
    body = resp.json()
    assert body["namespaces"]["categories"]["entries"] == [CATEGORIES_KEY]
    assert body["namespaces"]["categories"]["ttl_seconds"] == 300.0
    assert body["inflight"] == 0


def test_clear_namespace(client: TestClient, fake_remote, cache):
    fake_remote.responses["categories"] = [{"_id": "c1"}]
    client.get("/v1/categories")

    resp = client.delete("/v1/cache/categories")

    assert resp.status_code == 204
    assert cache.entry(CacheNamespace.CATEGORIES, CATEGORIES_KEY) is None


def test_clear_single_key(client: TestClient, fake_remote, cache):
    fake_remote.responses["categories"] = [{"_id": "c1"}]
    client.get("/v1/categories")

    resp = client.delete("/v1/cache/categories", params={"key": "something-else"})

    assert resp.status_code == 204
    assert cache.entry(CacheNamespace.CATEGORIES, CATEGORIES_KEY) is not None


def test_clear_unknown_namespace(client: TestClient):
    resp = client.delete("/v1/cache/bogus")
    assert resp.status_code == 404


def test_preload_is_accepted(client: TestClient):
    resp = client.post("/v1/cache/preload")
    assert resp.status_code == 202
    assert resp.json() == {"status": "scheduled"}


# ── Inquiries ─────────────────────────────────────────────────────────────────

INQUIRY = {
    "name": "Sita Sharma",
    "email": "sita@example.com",
    "phone": "9800000000",
    "message": "Do you deliver steel almirahs to Pokhara?",
    "category": "",
}


def test_create_inquiry(client: TestClient, catalog_client: FakeCatalogClient):
    resp = client.post("/v1/inquiries", json=INQUIRY)

    assert resp.status_code == 201
    assert resp.json()["status"] == "received"
    assert catalog_client.inquiries == [{**INQUIRY, "category": "general"}]


def test_create_inquiry_422_on_blank_field(client: TestClient, catalog_client: FakeCatalogClient):
    resp = client.post("/v1/inquiries", json={**INQUIRY, "phone": "  "})

    assert resp.status_code == 422
    assert catalog_client.inquiries == []


def test_create_inquiry_502_on_api_error(client: TestClient, catalog_client: FakeCatalogClient):
    catalog_client.error = RemoteSourceError("POST /inquiries returned HTTP 500", status_code=500)

    resp = client.post("/v1/inquiries", json=INQUIRY)

    assert resp.status_code == 502
    assert "Catalog API error" in resp.json()["detail"]


# ── Health ────────────────────────────────────────────────────────────────────


def test_healthz(client: TestClient):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert "X-Request-ID" in resp.headers


@pytest.mark.parametrize("healthy", [True, False])
def test_readyz_reflects_catalog_api(client: TestClient, catalog_client: FakeCatalogClient, healthy):
    catalog_client.healthy = healthy

    resp = client.get("/readyz")

    assert resp.status_code == 200
    body = resp.json()
    assert body["ready"] is healthy
    assert body["checks"]["catalog_api_healthy"] is healthy
