"""HTTP client for the scheduling service (Google Calendar API v3).

Availability is modelled as events on per-service calendars; bookings are
events on the store's invite calendar tagged with private extended
properties (``service_id``, ``booking_id`` ...).

All requests carry an OAuth bearer token (``GOOGLE_CALENDAR_TOKEN``).
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any
from urllib.parse import quote

from storechat.config import GOOGLE_CALENDAR_BASE_URL, GOOGLE_CALENDAR_TOKEN
from storechat.errors import ResourceUnavailable
from storechat.services.http import HTTPServiceClient

logger = logging.getLogger(__name__)


def _calendar_path(calendar_id: str) -> str:
    return f"/calendars/{quote(calendar_id, safe='')}"


def parse_event_time(value: dict[str, Any] | None) -> datetime | None:
    """Parse an event ``start``/``end`` object into an aware datetime."""
    if not value:
        return None
    raw = value.get("dateTime")
    if not raw:
        return None
    return datetime.fromisoformat(raw.replace("Z", "+00:00"))


class CalendarClient(HTTPServiceClient):
    service_name = "calendar"

    def __init__(self, token: str | None = None, base_url: str | None = None):
        token = token or GOOGLE_CALENDAR_TOKEN
        if not token:
            raise ResourceUnavailable(
                "Calendar booking is not configured (GOOGLE_CALENDAR_TOKEN is unset)."
            )
        super().__init__(
            base_url or GOOGLE_CALENDAR_BASE_URL,
            headers={"Authorization": f"Bearer {token}"},
        )

    def list_events(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
        *,
        single_events: bool = True,
    ) -> list[dict[str, Any]]:
        """List events overlapping ``[time_min, time_max)``.

        Recurring events are expanded into single instances by default.
        """
        params: dict[str, Any] = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": str(single_events).lower(),
        }
        if single_events:
            params["orderBy"] = "startTime"
        data = self._request("GET", f"{_calendar_path(calendar_id)}/events", params=params)
        return (data or {}).get("items", [])

    def create_event(
        self,
        calendar_id: str,
        event: dict[str, Any],
        *,
        send_updates: str = "all",
    ) -> dict[str, Any]:
        data = self._request(
            "POST",
            f"{_calendar_path(calendar_id)}/events",
            params={"sendUpdates": send_updates},
            json_body=event,
        )
        logger.info("Calendar event created: %s", (data or {}).get("id"))
        return data or {}

    def share_calendar(self, calendar_id: str, user_email: str, role: str = "writer") -> None:
        """Grant *user_email* access to *calendar_id* (sends a notification)."""
        self._request(
            "POST",
            f"{_calendar_path(calendar_id)}/acl",
            params={"sendNotifications": "true"},
            json_body={"role": role, "scope": {"type": "user", "value": user_email}},
        )
        logger.info("Calendar shared with %s (role: %s)", user_email, role)

    def count_bookings(
        self,
        invite_calendar_id: str,
        service_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> int:
        """Count live bookings for *service_id* starting inside the window."""
        events = self.list_events(invite_calendar_id, time_min, time_max)
        count = 0
        for event in events:
            if not is_live_booking(event, service_id):
                continue
            start = parse_event_time(event.get("start"))
            if start is not None and time_min <= start <= time_max:
                count += 1
        return count


def is_live_booking(event: dict[str, Any], service_id: str) -> bool:
    """True for a non-cancelled invite event tagged with *service_id*."""
    private = (event.get("extendedProperties") or {}).get("private") or {}
    return event.get("status") != "cancelled" and private.get("service_id") == service_id


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: CalendarClient | None = None
_client_lock = threading.Lock()


def get_calendar_client() -> CalendarClient:
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = CalendarClient()
    return _client
