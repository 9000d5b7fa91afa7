"""Tests for the shared HTTP client plumbing and the service clients built on it."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import httpx
import pytest

from storechat.errors import ExternalServiceError, ResourceUnavailable
from storechat.services.calendar_client import CalendarClient, is_live_booking
from storechat.services.database import StoreDatabase
from storechat.services.http import INITIAL_BACKOFF_SECONDS, MAX_RETRIES, HTTPServiceClient
from storechat.services.sheets_client import SheetsClient

# ── Helpers ──────────────────────────────────────────────────────────


def _mock_response(data, status_code: int = 200) -> MagicMock:
    mock = MagicMock()
    mock.status_code = status_code
    mock.json.return_value = data
    mock.text = str(data)
    mock.content = b"" if data is None else b"{}"
    return mock


class EchoClient(HTTPServiceClient):
    service_name = "echo"


# ── Tests: retry logic ───────────────────────────────────────────────


class TestRetryLogic:
    @patch("storechat.services.http.time.sleep")
    def test_retries_on_timeout(self, mock_sleep):
        client = EchoClient("https://example.test")

        with patch.object(
            client._client,
            "request",
            side_effect=[httpx.TimeoutException("timeout"), _mock_response({"ok": True})],
        ):
            assert client._request("GET", "/ping") == {"ok": True}
            mock_sleep.assert_called_once_with(INITIAL_BACKOFF_SECONDS)

    @patch("storechat.services.http.time.sleep")
    def test_retries_on_500_error(self, mock_sleep):
        client = EchoClient("https://example.test")

        with patch.object(
            client._client,
            "request",
            side_effect=[_mock_response({"error": "oops"}, 503), _mock_response({"ok": True})],
        ):
            assert client._request("GET", "/ping") == {"ok": True}

    @patch("storechat.services.http.time.sleep")
    def test_gives_up_after_max_retries(self, mock_sleep):
        client = EchoClient("https://example.test")

        with patch.object(
            client._client, "request", side_effect=httpx.ConnectError("refused"),
        ) as mock_req:
            with pytest.raises(ExternalServiceError, match="after 3 attempt"):
                client._request("GET", "/ping")
            assert mock_req.call_count == MAX_RETRIES
        # Exponential backoff: 1s, 2s
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    @patch("storechat.services.http.time.sleep")
    def test_does_not_retry_4xx(self, mock_sleep):
        client = EchoClient("https://example.test")

        with patch.object(
            client._client, "request", return_value=_mock_response({"error": "nope"}, 404),
        ) as mock_req:
            with pytest.raises(ExternalServiceError) as exc_info:
                client._request("GET", "/missing")
            assert exc_info.value.status_code == 404
            assert mock_req.call_count == 1
        mock_sleep.assert_not_called()

    def test_empty_body_returns_none(self):
        client = EchoClient("https://example.test")
        with patch.object(client._client, "request", return_value=_mock_response(None, 204)):
            assert client._request("DELETE", "/thing") is None

    @patch("storechat.services.http.time.sleep")
    def test_single_attempt_client_never_sleeps(self, mock_sleep):
        client = EchoClient("https://example.test", max_retries=1)
        with patch.object(client._client, "request", side_effect=httpx.TimeoutException("slow")):
            with pytest.raises(ExternalServiceError):
                client._request("POST", "/chat/completions")
        mock_sleep.assert_not_called()


# ── Tests: StoreDatabase ─────────────────────────────────────────────


class TestStoreDatabase:
    def test_get_store_builds_profile(self):
        db = StoreDatabase(url="https://db.test", service_key="k")
        row = {
            "id": 42,
            "name": "Clay Corner",
            "detected_schema": '{"Services": {"columns": ["serviceName"]}}',
            "calendar_mappings": {"cal-1": "svc-1"},
            "invite_calendar_id": "invites@group",
        }
        with patch.object(db._client, "request", return_value=_mock_response([row])) as mock_req:
            store = db.get_store("42")

        assert store.id == "42"
        assert store.detected_schema == {"Services": {"columns": ["serviceName"]}}
        assert store.calendar_mappings == {"cal-1": "svc-1"}
        params = mock_req.call_args[1]["params"]
        assert params["id"] == "eq.42"

    def test_missing_store_raises(self):
        db = StoreDatabase(url="https://db.test", service_key="k")
        with patch.object(db._client, "request", return_value=_mock_response([])):
            with pytest.raises(ResourceUnavailable, match="Store 9 not found"):
                db.get_store("9")


# ── Tests: SheetsClient ──────────────────────────────────────────────


class TestSheetsClient:
    def test_read_tab_bypasses_remote_cache(self):
        client = SheetsClient(url="https://sheets.test/fn", service_key="k")
        rows = [{"serviceName": "Yoga"}]
        with patch.object(
            client._client, "request", return_value=_mock_response({"success": True, "data": rows}),
        ) as mock_req:
            assert client.read_tab("42", "Services") == rows
        body = mock_req.call_args[1]["json"]
        assert body == {"operation": "read", "storeId": "42", "tabName": "Services", "cacheType": "none"}

    def test_read_tab_tolerates_missing_data(self):
        client = SheetsClient(url="https://sheets.test/fn", service_key="k")
        with patch.object(client._client, "request", return_value=_mock_response({"success": True})):
            assert client.read_tab("42", "Services") == []


# ── Tests: CalendarClient ────────────────────────────────────────────


class TestCalendarClient:
    def test_requires_token(self):
        with patch("storechat.services.calendar_client.GOOGLE_CALENDAR_TOKEN", None):
            with pytest.raises(ResourceUnavailable):
                CalendarClient()

    def test_count_bookings_only_counts_live_matching_events(self):
        client = CalendarClient(token="t")
        t_min = datetime(2026, 3, 2, 9, 59, tzinfo=UTC)
        t_max = datetime(2026, 3, 2, 10, 1, tzinfo=UTC)
        events = [
            {  # counted
                "status": "confirmed",
                "start": {"dateTime": "2026-03-02T10:00:00Z"},
                "extendedProperties": {"private": {"service_id": "svc-1"}},
            },
            {  # cancelled
                "status": "cancelled",
                "start": {"dateTime": "2026-03-02T10:00:00Z"},
                "extendedProperties": {"private": {"service_id": "svc-1"}},
            },
            {  # other service
                "status": "confirmed",
                "start": {"dateTime": "2026-03-02T10:00:00Z"},
                "extendedProperties": {"private": {"service_id": "svc-2"}},
            },
            {  # overlaps the window but starts earlier
                "status": "confirmed",
                "start": {"dateTime": "2026-03-02T09:00:00Z"},
                "extendedProperties": {"private": {"service_id": "svc-1"}},
            },
        ]
        with patch.object(client, "list_events", return_value=events):
            assert client.count_bookings("invites", "svc-1", t_min, t_max) == 1

    def test_count_bookings_ignores_events_without_a_start_time(self):
        client = CalendarClient(token="t")
        t_min = datetime(2026, 3, 2, 9, 59, tzinfo=UTC)
        t_max = datetime(2026, 3, 2, 10, 1, tzinfo=UTC)
        events = [
            {
                "status": "confirmed",
                "start": {"date": "2026-03-02"},
                "extendedProperties": {"private": {"service_id": "svc-1"}},
            },
            {"status": "confirmed", "extendedProperties": {"private": {"service_id": "svc-1"}}},
        ]
        with patch.object(client, "list_events", return_value=events):
            assert client.count_bookings("invites", "svc-1", t_min, t_max) == 0

    def test_calendar_id_is_url_encoded(self):
        client = CalendarClient(token="t")
        with patch.object(
            client._client, "request", return_value=_mock_response({"items": []}),
        ) as mock_req:
            client.list_events(
                "abc@group.calendar.google.com",
                datetime(2026, 3, 2, tzinfo=UTC),
                datetime(2026, 3, 3, tzinfo=UTC),
            )
        path = mock_req.call_args[0][1]
        assert path == "/calendars/abc%40group.calendar.google.com/events"

    def test_is_live_booking_without_properties(self):
        assert is_live_booking({"status": "confirmed"}, "svc-1") is False
