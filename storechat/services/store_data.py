"""Tab loader: resolves logical tab names and reads rows through the cache.

A store's spreadsheet has free-form tab names ("Our Services",
"Opening Hours" ...).  The detected schema (``stores.detected_schema``)
lists the real names; :func:`resolve_tab_name` maps a logical name such as
``services`` onto one of them.

The three core tabs (services, products, hours) are independent reads and
are always fetched concurrently.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from storechat.errors import ExternalServiceError
from storechat.models import Store
from storechat.services.cache import CacheStore, cache_key

logger = logging.getLogger(__name__)

CORE_DATA_TYPES = ("services", "products", "hours")

# Names tried when a store has no detected schema yet
TAB_ALIASES: dict[str, list[str]] = {
    "services": ["Services", "services", "SERVICES", "Service"],
    "products": ["Products", "products", "PRODUCTS", "Product", "Inventory"],
    "hours": ["Hours", "hours", "HOURS", "Store Hours", "Opening Hours"],
    "leads": ["Leads", "leads", "LEADS", "Lead"],
    "store_info": ["Store Info", "Info", "About"],
}


def resolve_tab_name(expected: str, detected_schema: dict[str, Any] | None) -> str | None:
    """Return the actual tab name for *expected*, or ``None``.

    Exact (case-insensitive) matches win over partial matches; a partial
    match is a substring in either direction.
    """
    if not detected_schema or not isinstance(detected_schema, dict):
        return None
    expected_lower = expected.lower()
    for actual in detected_schema:
        if actual.lower() == expected_lower:
            return actual
    for actual in detected_schema:
        actual_lower = actual.lower()
        if expected_lower in actual_lower or actual_lower in expected_lower:
            return actual
    return None


def tab_columns(store: Store, tab_name: str) -> list[str]:
    """Column headers of *tab_name* as recorded in the detected schema."""
    info = (store.detected_schema or {}).get(tab_name) or {}
    columns = info.get("columns") or []
    return [str(c) for c in columns]


class TabLoader:
    """Reads tab rows via the active cache strategy and the tab service."""

    def __init__(self, cache: CacheStore, sheets=None) -> None:
        self.cache = cache
        self._sheets = sheets

    @property
    def sheets(self):
        if self._sheets is None:
            from storechat.services.sheets_client import get_sheets_client

            self._sheets = get_sheets_client()
        return self._sheets

    def actual_tab(self, store: Store, logical_name: str) -> str | None:
        """Resolve *logical_name*; falls back to the first alias without a schema."""
        found = resolve_tab_name(logical_name, store.detected_schema)
        if found:
            return found
        if not store.detected_schema:
            aliases = TAB_ALIASES.get(logical_name.lower())
            return aliases[0] if aliases else logical_name
        return None

    def load_tab(
        self,
        store: Store,
        logical_name: str,
        *,
        use_cache: bool = True,
    ) -> list[dict[str, Any]] | None:
        """Return rows for *logical_name*, or ``None`` if the tab does not exist."""
        tab = self.actual_tab(store, logical_name)
        if tab is None:
            logger.info("Store %s has no tab matching %r", store.id, logical_name)
            return None

        key = cache_key(store.id, logical_name.lower())
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        try:
            rows = self.sheets.read_tab(store.id, tab)
        except ExternalServiceError as exc:
            if exc.status_code == 404:
                logger.info("Tab %r not found for store %s", tab, store.id)
                return None
            raise

        self.cache.set(key, rows)
        logger.debug("Loaded %d rows from %s/%s", len(rows), store.id, tab)
        return rows

    def append_row(self, store: Store, tab_name: str, row: dict[str, Any]) -> None:
        self.sheets.append_row(store.id, tab_name, row)

    # ── Fan-out ──────────────────────────────────────────────────────

    def _load_quietly(self, store: Store, data_type: str, use_cache: bool) -> list[dict[str, Any]]:
        try:
            return self.load_tab(store, data_type, use_cache=use_cache) or []
        except Exception as exc:
            logger.warning("Failed to load %s for store %s: %s", data_type, store.id, exc)
            return []

    def load_store_data(
        self,
        store: Store,
        supplied: dict[str, Any] | None = None,
        *,
        use_cache: bool = True,
    ) -> dict[str, list[dict[str, Any]]]:
        """Return ``{"services", "products", "hours"}`` rows for *store*.

        Non-empty rows in *supplied* (caller-provided ``cachedData``) are
        used as-is; the rest are fetched concurrently.
        """
        supplied = supplied or {}
        data: dict[str, list[dict[str, Any]]] = {}
        missing: list[str] = []
        for data_type in CORE_DATA_TYPES:
            rows = supplied.get(data_type)
            if rows:
                data[data_type] = list(rows)
            else:
                missing.append(data_type)

        if missing:
            with ThreadPoolExecutor(max_workers=len(missing)) as pool:
                futures = {
                    dt: pool.submit(self._load_quietly, store, dt, use_cache) for dt in missing
                }
                for data_type, future in futures.items():
                    data[data_type] = future.result()
        return data

    # ── Administration ───────────────────────────────────────────────

    def precache(self, store: Store) -> dict[str, Any]:
        """Refresh the three core tabs into the cache (parallel fetch)."""
        t0 = time.perf_counter()
        data = self.load_store_data(store, use_cache=False)
        duration_ms = (time.perf_counter() - t0) * 1000
        summary = {dt: len(rows) for dt, rows in data.items()}
        logger.info("Precache complete for store %s: %s (%.0fms)", store.id, summary, duration_ms)
        return {"storeId": store.id, **summary, "duration_ms": round(duration_ms, 1)}

    def clear(self, store_id: str) -> int:
        removed = self.cache.clear_store(store_id)
        logger.info("Cache cleared for store %s", store_id)
        return removed

    def stats(self, store_id: str) -> dict[str, Any]:
        stats = self.cache.stats(store_id)
        return {"storeId": store_id, "strategy": self.cache.name, "stats": stats, "cacheEntries": len(stats)}
