"""Client for the tab service (the spreadsheet adapter).

The service exposes one POST endpoint taking an ``operation``:

* ``read``   → ``{"success": true, "data": [row, ...]}``
* ``append`` → ``{"success": true, "message": "Row added"}``
* ``detect`` → ``{"success": true, "schema": {tab: {columns, sample_rows}}}``

Caching is done on our side (see :mod:`storechat.services.cache`), so reads
always ask the service to bypass its own cache.
"""

from __future__ import annotations

import threading
from typing import Any

from storechat.config import SHEETS_SERVICE_URL, SUPABASE_SERVICE_KEY
from storechat.services.http import HTTPServiceClient


class SheetsClient(HTTPServiceClient):
    service_name = "sheets"

    def __init__(self, url: str | None = None, service_key: str | None = None):
        key = service_key or SUPABASE_SERVICE_KEY
        self._url = url or SHEETS_SERVICE_URL
        super().__init__(
            self._url,
            headers={"Authorization": f"Bearer {key}", "apikey": key},
        )

    def _call(self, body: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", self._url, json_body=body) or {}

    def read_tab(self, store_id: str, tab_name: str) -> list[dict[str, Any]]:
        """Return every row of *tab_name* as a list of column → value dicts."""
        data = self._call(
            {"operation": "read", "storeId": store_id, "tabName": tab_name, "cacheType": "none"},
        )
        rows = data.get("data")
        return rows if isinstance(rows, list) else []

    def append_row(self, store_id: str, tab_name: str, row: dict[str, Any]) -> None:
        self._call(
            {"operation": "append", "storeId": store_id, "tabName": tab_name, "data": row},
        )

    def detect_schema(self, store_id: str, sheet_id: str) -> dict[str, Any]:
        data = self._call({"operation": "detect", "storeId": store_id, "sheetId": sheet_id})
        return data.get("schema") or {}


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: SheetsClient | None = None
_client_lock = threading.Lock()


def get_sheets_client() -> SheetsClient:
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = SheetsClient()
    return _client
