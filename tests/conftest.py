"""
tests/conftest.py – shared pytest configuration and fakes.

Integration tests (marked with @pytest.mark.integration) are skipped by
default. Pass --integration to opt in:

    pytest --integration tests/test_integration.py -v
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest

from storefront.services.cache import CacheConfig, DataCache
from storefront.services.fallback import LocalFallbackSource


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="Run integration tests that call a real catalog API.",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if not config.getoption("--integration"):
        skip = pytest.mark.skip(reason="Pass --integration to run this test.")
        for item in items:
            if item.get_closest_marker("integration"):
                item.add_marker(skip)


# ── Fakes ─────────────────────────────────────────────────────────────────────


class FakeClock:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRemote:
    """Scriptable catalog API.

    ``responses`` maps "categories" / "products" / "product" to a body, an
    exception instance (raised), or a callable taking the call arguments and
    returning either. Set ``gate`` to an asyncio.Event to hold every call
    until it is set.
    """

    def __init__(self) -> None:
        self.responses: dict[str, Any] = {}
        self.calls: list[tuple] = []
        self.gate: Optional[asyncio.Event] = None

    async def _respond(self, name: str, *args: Any) -> Any:
        self.calls.append((name, *args))
        if self.gate is not None:
            await self.gate.wait()
        result = self.responses.get(name)
        if callable(result):
            result = result(*args)
        if isinstance(result, BaseException):
            raise result
        return result

    async def fetch_categories(self) -> Any:
        return await self._respond("categories")

    async def fetch_products(self, category: str = "all", subcategory: Optional[str] = None) -> Any:
        return await self._respond("products", category, subcategory)

    async def fetch_product(self, product_id: str) -> Any:
        return await self._respond("product", product_id)

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def cache(fake_remote: FakeRemote, clock: FakeClock) -> DataCache:
    return DataCache(fake_remote, LocalFallbackSource(), CacheConfig(), clock=clock)
