"""
storefront/services/remote.py – async client for the remote catalog REST API.

Key design decisions
────────────────────
• One shared `httpx.AsyncClient` per process, closed in the app lifespan.
• Retries on transient errors (transport errors, 429, 5xx) with exponential
  backoff. The cache never retries; this is the only place that does.
• Returns decoded JSON bodies untouched. Shape checks belong to the caller.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Optional
from urllib.parse import quote

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)

from storefront.config import settings

logger = logging.getLogger(__name__)

_LIST_LIMIT = 1000


# ── Custom exception ──────────────────────────────────────────────────────────


class RemoteSourceError(RuntimeError):
    """Raised when the catalog API cannot produce a usable response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.__cause__ = cause


# ── Helpers ───────────────────────────────────────────────────────────────────


def _path_segment(value: str) -> str:
    """Encode *value* as a single URL path segment."""
    segment = quote(str(value), safe="")
    # Dot segments survive quote() and would be collapsed by URL normalisation
    if segment in {".", ".."}:
        segment = segment.replace(".", "%2E")
    return segment


def _is_transient(exc: BaseException) -> bool:
    """Return True for errors that are safe to retry."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in {429, 500, 502, 503, 504}
    # Connection-level / timeout errors
    return isinstance(exc, httpx.TransportError)


# ── Client ────────────────────────────────────────────────────────────────────


class CatalogAPIClient:
    """Thin wrapper around the storefront's catalog REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_min_wait: Optional[float] = None,
        retry_max_wait: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = (base_url or settings.catalog_api_base_url).rstrip("/")
        self._retry_attempts = (
            settings.catalog_api_retry_attempts if retry_attempts is None else retry_attempts
        )
        self._retry_min_wait = (
            settings.catalog_api_retry_min_wait if retry_min_wait is None else retry_min_wait
        )
        self._retry_max_wait = (
            settings.catalog_api_retry_max_wait if retry_max_wait is None else retry_max_wait
        )
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=settings.catalog_api_timeout if timeout is None else timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        logger.info("CatalogAPIClient initialised", extra={"base_url": self._base_url})

    @property
    def base_url(self) -> str:
        return self._base_url

    # ── Catalog endpoints ─────────────────────────────────────────────────────

    async def fetch_categories(self) -> Any:
        return await self._request("GET", "/categories", params={"detailed": "true"})

    async def fetch_products(self, category: str = "all", subcategory: Optional[str] = None) -> Any:
        """Fetch a product listing.

        ``category == "all"`` hits the unfiltered listing; anything else goes
        through the filter endpoint, narrowed by ``subcategory`` when given.
        """
        if category == "all":
            return await self._request(
                "GET", "/products", params={"page": 1, "limit": _LIST_LIMIT}
            )

        params: dict[str, Any] = {"category": category, "limit": _LIST_LIMIT}
        if subcategory:
            params["subcategory"] = subcategory
        return await self._request("GET", "/products/filter", params=params)

    async def fetch_product(self, product_id: str) -> Any:
        return await self._request("GET", f"/products/{_path_segment(product_id)}")

    async def create_inquiry(self, payload: dict[str, Any]) -> Any:
        return await self._request("POST", "/inquiries", json=payload)

    async def check_health(self, timeout: Optional[float] = None) -> bool:
        """Return True when GET /health answers ``{"status": "healthy"}``. Never raises."""
        try:
            response = await self._client.get(
                "/health",
                timeout=settings.catalog_api_health_timeout if timeout is None else timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Catalog API health check failed: %s", exc)
            return False
        return isinstance(body, dict) and body.get("status") == "healthy"

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Internal retry wrapper ─────────────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Executes the HTTP call with exponential-backoff retries."""

        @retry(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(min=self._retry_min_wait, max=self._retry_max_wait),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async def _execute() -> httpx.Response:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response

        t0 = time.perf_counter()
        try:
            response = await _execute()
        except httpx.HTTPStatusError as exc:
            raise RemoteSourceError(
                f"{method} {path} returned HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
                cause=exc,
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteSourceError(f"{method} {path} failed: {exc}", cause=exc) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteSourceError(
                f"{method} {path} returned a non-JSON body",
                status_code=response.status_code,
                cause=exc,
            ) from exc

        logger.debug(
            "Catalog API call completed",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "latency_ms": round((time.perf_counter() - t0) * 1000, 1),
            },
        )
        return body
