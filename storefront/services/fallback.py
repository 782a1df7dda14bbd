"""
storefront/services/fallback.py – bundled catalog data used when the remote API is down.

The data lives in storefront/data/catalog.json and is read once, on first use.
Every public method returns an empty result instead of raising, so the cache's
degrade chain can always call it safely.
"""
from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

_DATA_FILE = Path(__file__).parent.parent / "data" / "catalog.json"


class LocalFallbackSource:
    """Read-only access to the default categories and products."""

    def __init__(self, data_file: Optional[Path] = None) -> None:
        self._data_file = data_file or _DATA_FILE
        self._data: Optional[dict[str, Any]] = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data

        if not self._data_file.exists():
            logger.warning("Fallback catalog not found at %s", self._data_file)
            self._data = {}
            return self._data

        try:
            data = json.loads(self._data_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Failed to read/parse fallback catalog %s: %s", self._data_file, exc)
            data = {}

        if not isinstance(data, dict):
            logger.warning("Fallback catalog %s is not a JSON object", self._data_file)
            data = {}

        self._data = data
        return self._data

    def get_categories(self) -> list[dict[str, Any]]:
        """Return the default categories as raw records (copies, safe to mutate)."""
        categories = self._load().get("categories")
        if not isinstance(categories, list):
            return []
        return copy.deepcopy(categories)

    def find_product(self, product_id: str) -> Optional[dict[str, Any]]:
        """Return the default product whose ``id`` or ``_id`` matches, else None."""
        products = self._load().get("products")
        if not isinstance(products, list):
            return None
        for product in products:
            if not isinstance(product, dict):
                continue
            if product.get("id") == product_id or product.get("_id") == product_id:
                return copy.deepcopy(product)
        return None
