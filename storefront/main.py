"""
storefront/main.py – FastAPI application factory for the storefront catalog API.

Features
────────
• Structured logging via structlog
• Request-ID middleware (X-Request-ID header)
• Basic rate limiting (slowapi, per IP)
• One DataCache per process, built in the lifespan and shared through
  dependencies; background sweep and startup preload
• Clean startup/shutdown lifecycle
"""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.config import settings
from storefront.routes.cache_admin import router as cache_admin_router
from storefront.routes.catalog import router as catalog_router
from storefront.routes.health import router as health_router
from storefront.routes.inquiries import router as inquiries_router
from storefront.services.cache import CacheConfig, DataCache
from storefront.services.fallback import LocalFallbackSource
from storefront.services.remote import CatalogAPIClient

# ── Logging setup ─────────────────────────────────────────────────────────────


def _configure_logging() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer()
            if settings.debug
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
    )
    # Also configure standard logging to go through structlog
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )


_configure_logging()
logger = structlog.get_logger(__name__)

# ── Rate limiter ──────────────────────────────────────────────────────────────

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
)

# ── Request-ID middleware ─────────────────────────────────────────────────────


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Attaches a unique request ID to each incoming request.
    Reads X-Request-ID from the client if present, otherwise generates one.
    Echoes the request ID in the response header.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        response: Response = await call_next(request)
        duration_ms = round((time.perf_counter() - start) * 1000, 1)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration_ms)

        logger.info(
            "request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        structlog.contextvars.clear_contextvars()
        return response


# ── Lifespan ──────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    client = CatalogAPIClient()
    cache = DataCache(client, LocalFallbackSource(), CacheConfig.from_settings(settings))
    app.state.catalog_client = client
    app.state.data_cache = cache

    cache.start()
    if settings.preload_on_startup:
        cache.schedule_preload()

    logger.info(
        "Storefront API starting",
        name=settings.app_name,
        version=settings.app_version,
        catalog_api=client.base_url,
    )
    try:
        yield
    finally:
        await cache.stop()
        await client.aclose()
        logger.info("Storefront API shutting down")


# ── Application factory ───────────────────────────────────────────────────────


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Catalog API for the furniture storefront.\n\n"
            "Serves categories and products from an in-memory cache in front of "
            "the remote catalog service, falling back to stale or bundled data "
            "when that service is unreachable."
        ),
        openapi_tags=[
            {"name": "Catalog", "description": "Categories and products."},
            {"name": "Cache", "description": "Cache statistics and invalidation."},
            {"name": "Inquiries", "description": "Contact form submissions."},
            {"name": "Health", "description": "Liveness and readiness probes."},
        ],
        license_info={"name": "Proprietary"},
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # ── Middleware (order matters – outermost first) ───────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(SlowAPIMiddleware)

    # ── Rate limit error handler ──────────────────────────────────────────────
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(health_router)
    app.include_router(catalog_router)
    app.include_router(cache_admin_router)
    app.include_router(inquiries_router)

    return app


app = create_app()
