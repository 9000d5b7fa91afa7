"""PostgREST client for the store database.

Two tables matter to the engine:

``stores``
    Store profile, detected tab schema and calendar wiring.
``cache``
    Backing table for :class:`~storechat.services.cache.DatabaseCache`
    (``key`` unique, ``value`` jsonb, ``cachedAt``, ``expiresAt``).
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from storechat.config import SUPABASE_SERVICE_KEY, SUPABASE_URL
from storechat.errors import ResourceUnavailable
from storechat.models import Store
from storechat.services.http import HTTPServiceClient

logger = logging.getLogger(__name__)

_STORE_COLUMNS = (
    "id,name,type,description,sheet_id,detected_schema,"
    "calendar_mappings,invite_calendar_id"
)


class StoreDatabase(HTTPServiceClient):
    """Minimal PostgREST wrapper: select, upsert, delete."""

    service_name = "supabase"

    def __init__(self, url: str | None = None, service_key: str | None = None):
        key = service_key or SUPABASE_SERVICE_KEY
        super().__init__(
            f"{(url or SUPABASE_URL).rstrip('/')}/rest/v1",
            headers={"apikey": key, "Authorization": f"Bearer {key}"},
        )

    # ── Generic table access ─────────────────────────────────────────

    def select(
        self,
        table: str,
        filters: dict[str, str] | None = None,
        *,
        columns: str = "*",
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return rows of *table* matching PostgREST *filters*.

        Filters use PostgREST operator syntax, e.g.
        ``{"key": "eq.store:1:services", "expiresAt": "gt.2025-01-01T00:00:00Z"}``.
        """
        params: dict[str, Any] = {"select": columns, **(filters or {})}
        if limit is not None:
            params["limit"] = limit
        return self._request("GET", f"/{table}", params=params) or []

    def upsert(self, table: str, rows: list[dict[str, Any]], *, on_conflict: str) -> None:
        self._request(
            "POST",
            f"/{table}",
            params={"on_conflict": on_conflict},
            json_body=rows,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    def delete(self, table: str, filters: dict[str, str]) -> None:
        self._request(
            "DELETE",
            f"/{table}",
            params=filters,
            headers={"Prefer": "return=minimal"},
        )

    # ── Stores ───────────────────────────────────────────────────────

    def get_store(self, store_id: str) -> Store:
        """Load one store profile or raise :class:`ResourceUnavailable`."""
        rows = self.select(
            "stores", {"id": f"eq.{store_id}"}, columns=_STORE_COLUMNS, limit=1,
        )
        if not rows:
            raise ResourceUnavailable(f"Store {store_id} not found")
        return Store.from_row(rows[0])


# ── Module-level singleton (thread-safe) ────────────────────────────
_db: StoreDatabase | None = None
_db_lock = threading.Lock()


def get_database() -> StoreDatabase:
    """Return the shared StoreDatabase, creating it on first use."""
    global _db
    if _db is None:
        with _db_lock:
            if _db is None:
                _db = StoreDatabase()
    return _db
