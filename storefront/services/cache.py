"""
storefront/services/cache.py – in-memory TTL cache for categories and products.

The cache is split into independent namespaces, each with its own TTL and
its own key → entry map. A read is served from the cache while the entry is
younger than the namespace TTL; otherwise the remote catalog API is asked.
When the remote call fails (transport error or unusable body) the cache
degrades instead of raising:

    categories:  expired entry → bundled local categories → []
    listings:    expired entry → []
    product:     expired entry → bundled local product → None

Concurrent misses for the same key share one remote fetch; clearing a key
detaches its in-flight fetch so a stale result is never stored. A background
sweep evicts expired entries; validity is still checked on every read, so
nothing depends on the sweep having run.

Construct one DataCache at application start and pass it to consumers.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Coroutine, Optional, Protocol, Union
from urllib.parse import quote

from storefront.models import CacheNamespace, Category, ListingMetadata, Subcategory

logger = logging.getLogger(__name__)

CATEGORIES_KEY = "all_categories"
ALL_PRODUCTS = "all"


class MalformedPayloadError(ValueError):
    """Raised when a remote body is not a usable collection shape."""


class RemoteSource(Protocol):
    async def fetch_categories(self) -> Any: ...

    async def fetch_products(self, category: str = ALL_PRODUCTS, subcategory: Optional[str] = None) -> Any: ...

    async def fetch_product(self, product_id: str) -> Any: ...


class FallbackSource(Protocol):
    def get_categories(self) -> list[dict[str, Any]]: ...

    def find_product(self, product_id: str) -> Optional[dict[str, Any]]: ...


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    timestamp: float


@dataclass
class CacheConfig:
    """TTLs and intervals, in seconds."""

    categories_ttl: float = 300.0
    products_ttl: float = 180.0
    category_products_ttl: float = 120.0
    metadata_ttl: float = 120.0
    sweep_interval: float = 60.0
    preload_fanout: int = 3
    preload_delay: float = 1.0

    @classmethod
    def from_settings(cls, settings: Any) -> "CacheConfig":
        return cls(
            categories_ttl=settings.cache_categories_ttl,
            products_ttl=settings.cache_products_ttl,
            category_products_ttl=settings.cache_category_products_ttl,
            metadata_ttl=settings.cache_metadata_ttl,
            sweep_interval=settings.cache_sweep_interval,
            preload_fanout=settings.cache_preload_fanout,
            preload_delay=settings.cache_preload_delay,
        )

    def ttl_for(self, namespace: CacheNamespace) -> float:
        return {
            CacheNamespace.CATEGORIES: self.categories_ttl,
            CacheNamespace.PRODUCTS: self.products_ttl,
            CacheNamespace.CATEGORY_PRODUCTS: self.category_products_ttl,
            CacheNamespace.METADATA: self.metadata_ttl,
        }[namespace]


# ── Keys ──────────────────────────────────────────────────────────────────────


def _part(value: Any) -> str:
    return quote(str(value), safe="")


def product_list_key(category: str = ALL_PRODUCTS, subcategory: Optional[str] = None) -> str:
    """Key for a listing. Components are percent-encoded so pairs never collide."""
    return f"products:{_part(category)}:{_part(subcategory or 'none')}"


def listing_meta_key(category: str = ALL_PRODUCTS, subcategory: Optional[str] = None) -> str:
    return f"meta:{product_list_key(category, subcategory)}"


def product_key(product_id: str) -> str:
    return f"product:{_part(product_id)}"


# ── Normalisation ─────────────────────────────────────────────────────────────


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _record_id(raw: Mapping) -> str:
    value = raw.get("_id") or raw.get("id")
    return "" if value is None else str(value)


def normalize_category(raw: Any) -> Category:
    """Map a loosely shaped category record onto `Category`.

    Total for any input: non-mappings are treated as empty records, missing
    text fields become "", and a non-list ``subcategories`` becomes [].
    """
    if not isinstance(raw, Mapping):
        raw = {}

    category_id = _record_id(raw)

    subcategories: list[Subcategory] = []
    raw_subs = raw.get("subcategories")
    if isinstance(raw_subs, (list, tuple)):
        for sub in raw_subs:
            if not isinstance(sub, Mapping):
                continue
            subcategories.append(
                Subcategory(id=_record_id(sub), name=_text(sub.get("name")), parent_id=category_id)
            )

    image = raw.get("image")
    return Category(
        id=category_id,
        name=_text(raw.get("name")),
        description=_text(raw.get("description")),
        image=image if isinstance(image, str) and image else None,
        subcategories=subcategories,
    )


# ── Payload shape detection ───────────────────────────────────────────────────


def _category_records(body: Any) -> list[Any]:
    records = body.get("data") if isinstance(body, Mapping) else body
    if not isinstance(records, list):
        raise MalformedPayloadError(f"categories payload is {type(body).__name__}, not a list")
    if not records:
        raise MalformedPayloadError("categories payload is empty")
    return records


def _product_records(body: Any) -> list[Any]:
    """Accept a bare list or ``{"products": [...]}``."""
    if isinstance(body, list):
        return list(body)
    if isinstance(body, Mapping) and isinstance(body.get("products"), list):
        return list(body["products"])
    raise MalformedPayloadError(f"products payload is {type(body).__name__} without a products list")


def _product_record(body: Any) -> dict[str, Any]:
    """Accept a product object or ``{"product": {...}}``."""
    if isinstance(body, Mapping):
        wrapped = body.get("product")
        if isinstance(wrapped, Mapping):
            return dict(wrapped)
        if body:
            return dict(body)
    raise MalformedPayloadError("product payload is not an object")


# ── Cache ─────────────────────────────────────────────────────────────────────


class DataCache:
    """Namespace-partitioned TTL cache in front of the catalog API."""

    def __init__(
        self,
        remote: RemoteSource,
        fallback: Optional[FallbackSource] = None,
        config: Optional[CacheConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._remote = remote
        self._fallback = fallback
        self._config = config or CacheConfig()
        self._clock = clock
        self._store: dict[CacheNamespace, dict[str, CacheEntry]] = {ns: {} for ns in CacheNamespace}
        self._inflight: dict[tuple[CacheNamespace, str], asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()
        self._sweep_task: Optional[asyncio.Task] = None

    @property
    def config(self) -> CacheConfig:
        return self._config

    # ── Entry helpers ─────────────────────────────────────────────────────────

    def entry(self, namespace: Union[CacheNamespace, str], key: str) -> Optional[CacheEntry]:
        """Return the raw entry for *key*, expired or not."""
        return self._store[CacheNamespace(namespace)].get(key)

    def _fresh(self, namespace: CacheNamespace, key: str) -> Optional[CacheEntry]:
        entry = self._store[namespace].get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp < self._config.ttl_for(namespace):
            return entry
        return None

    def _set(self, namespace: CacheNamespace, key: str, data: Any) -> None:
        self._store[namespace][key] = CacheEntry(data=data, timestamp=self._clock())

    async def _fetch_shared(
        self,
        namespace: CacheNamespace,
        key: str,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Run *loader* once per key; concurrent callers await the same task."""
        slot = (namespace, key)
        task = self._inflight.get(slot)
        if task is None:
            task = asyncio.ensure_future(loader())
            self._inflight[slot] = task
            task.add_done_callback(lambda t, slot=slot: self._release(slot, t))
        else:
            logger.debug("Joining in-flight fetch", extra={"namespace": namespace.value, "key": key})
        return await asyncio.shield(task)

    def _owns_slot(self, namespace: CacheNamespace, key: str) -> bool:
        """False once an invalidation has detached the running fetch from its key."""
        return self._inflight.get((namespace, key)) is asyncio.current_task()

    def _release(self, slot: tuple[CacheNamespace, str], task: asyncio.Task) -> None:
        if self._inflight.get(slot) is task:
            del self._inflight[slot]
        if not task.cancelled():
            task.exception()  # mark retrieved; every awaiter handles it

    # ── Categories ────────────────────────────────────────────────────────────

    async def get_categories(self, force_refresh: bool = False) -> list[Category]:
        """Return all categories. Never raises; may return []."""
        namespace = CacheNamespace.CATEGORIES
        if not force_refresh:
            cached = self._fresh(namespace, CATEGORIES_KEY)
            if cached is not None:
                logger.debug("Returning cached categories")
                return cached.data

        try:
            return await self._fetch_shared(namespace, CATEGORIES_KEY, self._load_categories)
        except Exception as exc:
            logger.warning("Categories fetch failed, using fallback: %s", exc)
            return self._degrade_categories()

    async def _load_categories(self) -> list[Category]:
        logger.info("Fetching fresh categories from catalog API")
        body = await self._remote.fetch_categories()
        categories = [normalize_category(raw) for raw in _category_records(body)]
        if not self._owns_slot(CacheNamespace.CATEGORIES, CATEGORIES_KEY):
            logger.info("Discarding categories invalidated while in flight")
            return categories
        self._set(CacheNamespace.CATEGORIES, CATEGORIES_KEY, categories)
        logger.info("Cached %d categories", len(categories))
        return categories

    def _degrade_categories(self) -> list[Category]:
        stale = self._store[CacheNamespace.CATEGORIES].get(CATEGORIES_KEY)
        if stale is not None:
            logger.warning("Using expired categories as fallback")
            return stale.data

        if self._fallback is not None:
            try:
                local = self._fallback.get_categories()
            except Exception as exc:
                logger.warning("Local fallback categories unavailable: %s", exc)
                local = []
            if isinstance(local, list) and local:
                logger.warning("Using %d local fallback categories", len(local))
                return [normalize_category(raw) for raw in local]

        logger.warning("No category data available, returning empty list")
        return []

    # ── Product listings ──────────────────────────────────────────────────────

    async def get_products(
        self,
        category: str = ALL_PRODUCTS,
        subcategory: Optional[str] = None,
        force_refresh: bool = False,
    ) -> list[Any]:
        """Return the listing for *category* / *subcategory*. Always a list."""
        category = category or ALL_PRODUCTS
        namespace = CacheNamespace.CATEGORY_PRODUCTS
        key = product_list_key(category, subcategory)

        if not force_refresh:
            cached = self._fresh(namespace, key)
            if cached is not None:
                logger.debug("Returning cached products", extra={"key": key})
                return cached.data

        try:
            return await self._fetch_shared(
                namespace, key, lambda: self._load_products(category, subcategory, key)
            )
        except Exception as exc:
            logger.warning("Products fetch failed for %s, using fallback: %s", key, exc)

        stale = self._store[namespace].get(key)
        if stale is not None and isinstance(stale.data, list):
            logger.warning("Using expired products as fallback", extra={"key": key})
            return stale.data

        logger.warning("No product data for %s, returning empty list", key)
        return []

    async def _load_products(self, category: str, subcategory: Optional[str], key: str) -> list[Any]:
        logger.info(
            "Fetching fresh products from catalog API",
            extra={"category": category, "subcategory": subcategory},
        )
        body = await self._remote.fetch_products(category, subcategory)
        products = _product_records(body)
        if not self._owns_slot(CacheNamespace.CATEGORY_PRODUCTS, key):
            logger.info("Discarding products invalidated while in flight", extra={"key": key})
            return products
        self._set(CacheNamespace.CATEGORY_PRODUCTS, key, products)

        try:
            self._set(
                CacheNamespace.METADATA,
                listing_meta_key(category, subcategory),
                ListingMetadata(
                    count=len(products),
                    category=category,
                    subcategory=subcategory,
                    last_fetch=datetime.now(timezone.utc),
                ),
            )
        except Exception as exc:
            logger.warning("Failed to record listing metadata for %s: %s", key, exc)

        logger.info("Cached %d products for %s", len(products), key)
        return products

    # ── Single product ────────────────────────────────────────────────────────

    async def get_product(self, product_id: str, force_refresh: bool = False) -> Optional[dict[str, Any]]:
        """Return one product by id, or None when no source has it."""
        namespace = CacheNamespace.PRODUCTS
        key = product_key(product_id)

        if not force_refresh:
            cached = self._fresh(namespace, key)
            if cached is not None:
                return cached.data

        try:
            return await self._fetch_shared(namespace, key, lambda: self._load_product(product_id, key))
        except Exception as exc:
            logger.warning("Product fetch failed for %s, using fallback: %s", product_id, exc)

        stale = self._store[namespace].get(key)
        if stale is not None:
            logger.warning("Using expired product as fallback", extra={"product_id": product_id})
            return stale.data

        if self._fallback is not None:
            try:
                return self._fallback.find_product(product_id)
            except Exception as exc:
                logger.warning("Local fallback product lookup failed: %s", exc)
        return None

    async def _load_product(self, product_id: str, key: str) -> dict[str, Any]:
        body = await self._remote.fetch_product(product_id)
        product = _product_record(body)
        if self._owns_slot(CacheNamespace.PRODUCTS, key):
            self._set(CacheNamespace.PRODUCTS, key, product)
        return product

    # ── Preloading ────────────────────────────────────────────────────────────

    async def preload_common_products(self) -> None:
        """Warm the listings of the first few categories without waiting for them."""
        categories = await self.get_categories()
        if not categories:
            logger.warning("No categories to preload products for")
            return

        preloaded: set[str] = set()
        for category in categories[: self._config.preload_fanout]:
            if not category.id or category.id in preloaded:
                continue
            self._spawn(self.get_products(category.id), name=f"preload:{category.id}")
            preloaded.add(category.id)

        logger.info("Preloading products for %d categories", len(preloaded))

    def schedule_preload(self, delay: Optional[float] = None) -> asyncio.Task:
        """Run `preload_common_products` in the background after *delay* seconds."""
        wait = self._config.preload_delay if delay is None else delay

        async def _delayed() -> None:
            await asyncio.sleep(wait)
            await self.preload_common_products()

        return self._spawn(_delayed(), name="preload")

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background task %s failed: %s", task.get_name(), exc)

    # ── Invalidation & hygiene ────────────────────────────────────────────────

    def clear_cache(self, namespace: Union[CacheNamespace, str], key: Optional[str] = None) -> None:
        """Drop one entry, or the whole namespace when *key* is None.

        Fetches already in flight for the cleared keys are detached: their
        callers still get the result, but it is not stored, and the next
        caller starts a new fetch.

        Raises ValueError for an unknown namespace.
        """
        ns = CacheNamespace(namespace)
        if key is not None:
            self._store[ns].pop(key, None)
            self._inflight.pop((ns, key), None)
        else:
            self._store[ns].clear()
            for slot in [s for s in self._inflight if s[0] is ns]:
                del self._inflight[slot]
        logger.info("Cache cleared", extra={"namespace": ns.value, "key": key})

    def clear_all_caches(self) -> None:
        for entries in self._store.values():
            entries.clear()
        self._inflight.clear()
        logger.info("All caches cleared")

    def sweep(self) -> int:
        """Evict every entry older than its namespace TTL. Returns the count."""
        now = self._clock()
        removed = 0
        for namespace, entries in self._store.items():
            ttl = self._config.ttl_for(namespace)
            expired = [key for key, entry in entries.items() if now - entry.timestamp >= ttl]
            for key in expired:
                del entries[key]
            removed += len(expired)

        if removed:
            logger.info("Cleaned %d expired cache entries", removed)
        return removed

    def start(self) -> None:
        """Start the recurring sweep. Needs a running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.get_running_loop().create_task(
                self._sweep_loop(), name="cache-sweep"
            )

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.sweep_interval)
            self.sweep()

    async def stop(self) -> None:
        """Cancel the sweep and any outstanding background preloads."""
        tasks = [t for t in (self._sweep_task, *self._background) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._sweep_task = None

    def stats(self) -> dict[str, Any]:
        return {
            "namespaces": {
                ns.value: {
                    "size": len(entries),
                    "ttl_seconds": self._config.ttl_for(ns),
                    "entries": list(entries),
                }
                for ns, entries in self._store.items()
            },
            "inflight": len(self._inflight),
        }
