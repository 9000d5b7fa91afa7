"""Tests for the calendar-backed booking tools."""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from storechat.tools.booking import (
    BOOKING_MATCH_TOLERANCE,
    check_availability,
    create_booking,
    get_booking_slots,
    new_booking_id,
)

HK = ZoneInfo("Asia/Hong_Kong")


def _window(start: str, end: str, status: str = "confirmed") -> dict:
    return {"status": status, "start": {"dateTime": start}, "end": {"dateTime": end}}


def _booking(start: str, service_id: str = "svc-wheel", status: str = "confirmed") -> dict:
    return {
        "status": status,
        "start": {"dateTime": start},
        "extendedProperties": {"private": {"service_id": service_id}},
    }


CLASS_WINDOW = _window("2026-03-02T09:30:00+08:00", "2026-03-02T11:30:00+08:00")

BOOKING_PARAMS = {
    "service_name": "wheel",
    "date": "2026-03-02",
    "time": "10:00",
    "customer_name": "Ana Lima",
    "customer_email": "ana@example.com",
}


def test_booking_id_format():
    assert re.fullmatch(r"bk_\d{13}_[0-9a-z]{9}", new_booking_id())


# ── Service resolution (shared by all three tools) ──────────────────


class TestResolveService:
    def test_unknown_service(self, tool_context):
        result = check_availability({"service_name": "massage", "date": "2026-03-02", "time": "10:00"}, tool_context)
        assert not result.success
        assert result.error == "Service not found"
        assert 'matching "massage"' in result.message

    def test_service_without_calendar(self, tool_context):
        result = check_availability({"service_name": "glazing", "date": "2026-03-02", "time": "10:00"}, tool_context)
        assert not result.success
        assert result.error == "Service not linked to calendar"
        assert result.message.startswith("Glazing Workshop is not currently available")

    def test_store_without_invite_calendar(self, tool_context):
        tool_context.store.invite_calendar_id = None
        result = get_booking_slots({"service_name": "wheel"}, tool_context)
        assert not result.success
        assert result.error == "Calendar booking not set up"


# ── check_availability ──────────────────────────────────────────────


class TestCheckAvailability:
    PARAMS = {"service_name": "wheel", "date": "2026-03-02", "time": "10:00"}

    def test_available_with_spots(self, tool_context, calendar):
        calendar.list_events.return_value = [CLASS_WINDOW]
        calendar.count_bookings.return_value = 3

        result = check_availability(self.PARAMS, tool_context)

        assert result.success
        assert result.data["available"] is True
        assert result.data["available_spots"] == 5
        assert result.data["capacity"] == 8
        assert "5 spots remaining" in result.message

        invite, service_id, t_min, t_max = calendar.count_bookings.call_args[0]
        instant = datetime(2026, 3, 2, 10, 0, tzinfo=HK)
        assert (invite, service_id) == ("invites@group", "svc-wheel")
        assert t_min == instant - BOOKING_MATCH_TOLERANCE
        assert t_max == instant + BOOKING_MATCH_TOLERANCE

    def test_window_is_looked_up_for_the_whole_day(self, tool_context, calendar):
        calendar.list_events.return_value = [CLASS_WINDOW]
        check_availability(self.PARAMS, tool_context)
        cal_id, day_start, day_end = calendar.list_events.call_args[0]
        assert cal_id == "cal-wheel@group"
        assert day_start == datetime(2026, 3, 2, tzinfo=HK)
        assert day_end - day_start == timedelta(days=1)

    def test_fully_booked(self, tool_context, calendar):
        calendar.list_events.return_value = [CLASS_WINDOW]
        calendar.count_bookings.return_value = 8
        result = check_availability(self.PARAMS, tool_context)
        assert result.success
        assert result.data["available"] is False
        assert "fully booked" in result.message

    def test_outside_any_window(self, tool_context, calendar):
        calendar.list_events.return_value = [
            _window("2026-03-02T14:00:00+08:00", "2026-03-02T16:00:00+08:00"),
            _window("2026-03-02T09:00:00+08:00", "2026-03-02T12:00:00+08:00", status="cancelled"),
        ]
        result = check_availability(self.PARAMS, tool_context)
        assert result.data["available"] is False
        assert result.data["reason"] == "no_class_scheduled"
        calendar.count_bookings.assert_not_called()

    def test_window_end_is_exclusive(self, tool_context, calendar):
        calendar.list_events.return_value = [CLASS_WINDOW]
        result = check_availability({**self.PARAMS, "time": "11:30"}, tool_context)
        assert result.data["reason"] == "no_class_scheduled"


# ── get_booking_slots ───────────────────────────────────────────────


class TestGetBookingSlots:
    NOW = datetime(2026, 3, 1, 8, 0, tzinfo=HK)

    @pytest.fixture
    def slot_context(self, tool_context, calendar):
        tool_context.now = lambda: self.NOW
        windows = [
            _window("2026-03-01T07:00:00+08:00", "2026-03-01T08:00:00+08:00"),  # past
            _window("2026-03-02T10:00:00+08:00", "2026-03-02T11:30:00+08:00"),  # full
            _window("2026-03-03T10:00:00+08:00", "2026-03-03T11:30:00+08:00"),
            _window("2026-03-04T10:00:00+08:00", "2026-03-04T11:30:00+08:00", status="cancelled"),
        ]
        bookings = [_booking("2026-03-02T02:00:00Z") for _ in range(8)] + [
            _booking("2026-03-03T02:00:00Z"),
            _booking("2026-03-03T02:00:00Z", status="cancelled"),
            _booking("2026-03-03T02:00:00Z", service_id="svc-glaze"),
        ]
        calendar.list_events.side_effect = lambda cal_id, *a, **kw: (
            windows if cal_id == "cal-wheel@group" else bookings
        )
        return tool_context

    def test_lists_future_slots_with_spots(self, slot_context, calendar):
        result = get_booking_slots(
            {"service_name": "wheel", "start_date": "2026-03-01", "end_date": "2026-03-05", "prefill_name": "Ana"},
            slot_context,
        )

        assert result.success
        assert result.data["slots"] == [{"date": "2026-03-03", "time": "10:00", "available_spots": 7}]
        assert result.data["slotsCount"] == 1
        assert result.data["dateRange"] == {"from": "2026-03-01", "to": "2026-03-05"}
        assert result.data["service"] == {"name": "Wheel Throwing Basics", "duration": 90, "price": "45"}
        # One read per calendar for the whole range
        assert calendar.list_events.call_count == 2

        component = result.components[0]
        assert component["type"] == "BookingCalendar"
        assert component["props"]["prefill"] == {"name": "Ana"}

    def test_default_range_is_two_weeks_from_today(self, slot_context):
        result = get_booking_slots({"service_name": "wheel"}, slot_context)
        assert result.data["dateRange"] == {"from": "2026-03-01", "to": "2026-03-14"}

    def test_no_slots_has_no_component(self, slot_context, calendar):
        calendar.list_events.side_effect = None
        calendar.list_events.return_value = []
        result = get_booking_slots({"service_name": "wheel"}, slot_context)
        assert result.success
        assert result.data["slots"] == []
        assert result.components == []
        assert result.message.startswith("No available slots for Wheel Throwing Basics")


# ── create_booking ──────────────────────────────────────────────────


class TestCreateBooking:
    def test_creates_invite_event(self, tool_context, calendar):
        calendar.list_events.return_value = [CLASS_WINDOW]
        calendar.count_bookings.return_value = 2

        result = create_booking(BOOKING_PARAMS, tool_context)

        assert result.success
        assert result.data["available_spots_remaining"] == 5
        cal_id, event = calendar.create_event.call_args[0]
        assert cal_id == "invites@group"
        assert calendar.create_event.call_args[1]["send_updates"] == "all"
        assert event["start"] == {"dateTime": "2026-03-02T10:00:00+08:00", "timeZone": "Asia/Hong_Kong"}
        assert event["end"]["dateTime"] == "2026-03-02T11:30:00+08:00"
        assert event["attendees"] == [{"email": "ana@example.com"}]
        private = event["extendedProperties"]["private"]
        assert private["service_id"] == "svc-wheel"
        assert private["booking_id"] == result.data["booking_id"]
        assert "Customer Details:" in event["description"]

    def test_fully_booked_is_rejected(self, tool_context, calendar):
        calendar.list_events.return_value = [CLASS_WINDOW]
        calendar.count_bookings.return_value = 8

        result = create_booking(BOOKING_PARAMS, tool_context)

        assert not result.success
        assert result.error == "fully_booked"
        assert result.data == {"service_name": "Wheel Throwing Basics", "date": "2026-03-02", "time": "10:00"}
        calendar.create_event.assert_not_called()

    def test_no_class_scheduled(self, tool_context, calendar):
        calendar.list_events.return_value = []
        result = create_booking(BOOKING_PARAMS, tool_context)
        assert result.error == "no_class_scheduled"
        calendar.create_event.assert_not_called()
