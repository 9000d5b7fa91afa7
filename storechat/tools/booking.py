"""Calendar-backed booking tools.

Availability is published as events on a per-service calendar: an event
``[start, end)`` is a class window.  Bookings are events on the store's
invite calendar carrying ``extendedProperties.private.service_id``.  A
service's capacity is the number of live bookings allowed per window start.

Mapping ``calendar id -> service id`` lives in ``stores.calendar_mappings``;
the service id is the sheet's ``serviceID`` column, or the service name.
"""

from __future__ import annotations

import logging
import random
import string
import time as _time
from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from storechat.models import FunctionResult, make_component
from storechat.services.calendar_client import is_live_booking, parse_event_time
from storechat.tools.context import ToolContext

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 20
DEFAULT_DURATION_MINUTES = 60
DEFAULT_SLOT_RANGE_DAYS = 14
MAX_SLOTS = 50
# Bookings starting this close to the requested instant share its capacity
BOOKING_MATCH_TOLERANCE = timedelta(minutes=1)

_BASE36 = string.digits + string.ascii_lowercase


def new_booking_id() -> str:
    """``bk_<epoch ms>_<9 base36 chars>``"""
    suffix = "".join(random.choices(_BASE36, k=9))
    return f"bk_{int(_time.time() * 1000)}_{suffix}"


def _int_or(value: Any, default: int) -> int:
    try:
        parsed = int(float(value))
    except (TypeError, ValueError):
        return default
    return parsed or default


@dataclass
class BookableService:
    row: dict[str, Any]
    service_id: str
    calendar_id: str

    @property
    def name(self) -> str:
        return str(self.row.get("serviceName") or self.service_id)

    @property
    def capacity(self) -> int:
        return _int_or(self.row.get("capacity"), DEFAULT_CAPACITY)

    @property
    def duration(self) -> int:
        return _int_or(self.row.get("duration"), DEFAULT_DURATION_MINUTES)

    @property
    def price(self) -> Any:
        return self.row.get("price")


def find_service(rows: list[dict[str, Any]], service_name: str) -> dict[str, Any] | None:
    needle = service_name.lower().strip()
    for row in rows:
        if needle in str(row.get("serviceName") or "").lower():
            return row
    return None


def resolve_service(ctx: ToolContext, service_name: str) -> BookableService | FunctionResult:
    """Find the service row and its availability calendar, or a failure result."""
    if not ctx.store.invite_calendar_id:
        return FunctionResult.fail(
            "Calendar booking not set up",
            "Online booking is not available for this store yet. Please contact us directly.",
        )

    rows = ctx.rows("services") or []
    row = find_service(rows, service_name)
    if row is None:
        return FunctionResult.fail(
            "Service not found",
            f'I couldn\'t find a service matching "{service_name}". '
            "Would you like to see all available services?",
        )

    service_id = str(row.get("serviceID") or row.get("serviceName"))
    calendar_id = next(
        (cal for cal, sid in ctx.store.calendar_mappings.items() if sid == service_id),
        None,
    )
    if calendar_id is None:
        name = row.get("serviceName") or service_name
        return FunctionResult.fail(
            "Service not linked to calendar",
            f"{name} is not currently available for booking. Please contact us directly.",
        )
    return BookableService(row=row, service_id=service_id, calendar_id=calendar_id)


def requested_instant(ctx: ToolContext, date: str, time: str) -> datetime:
    return datetime.strptime(f"{date} {time}", "%Y-%m-%d %H:%M").replace(tzinfo=ctx.tz)


def find_window(ctx: ToolContext, service: BookableService, instant: datetime) -> dict[str, Any] | None:
    """The availability event whose ``[start, end)`` contains *instant*."""
    day_start = instant.replace(hour=0, minute=0, second=0, microsecond=0)
    events = ctx.calendar.list_events(service.calendar_id, day_start, day_start + timedelta(days=1))
    for event in events:
        if event.get("status") == "cancelled":
            continue
        start = parse_event_time(event.get("start"))
        end = parse_event_time(event.get("end"))
        if start and end and start <= instant < end:
            return event
    return None


def count_booked(ctx: ToolContext, service: BookableService, instant: datetime) -> int:
    return ctx.calendar.count_bookings(
        ctx.store.invite_calendar_id,
        service.service_id,
        instant - BOOKING_MATCH_TOLERANCE,
        instant + BOOKING_MATCH_TOLERANCE,
    )


# ── check_availability ──────────────────────────────────────────────


def check_availability(params: dict[str, Any], ctx: ToolContext) -> FunctionResult:
    service = resolve_service(ctx, params["service_name"])
    if isinstance(service, FunctionResult):
        return service

    date, time = params["date"], params["time"]
    instant = requested_instant(ctx, date, time)
    summary = {
        "service": service.name,
        "date": date,
        "time": time,
        "capacity": service.capacity,
        "price": service.price,
        "duration": service.duration,
    }

    if find_window(ctx, service, instant) is None:
        return FunctionResult(
            success=True,
            data={**summary, "available": False, "booked": 0, "available_spots": 0,
                  "reason": "no_class_scheduled"},
            message=f"Sorry, {service.name} doesn't have any classes scheduled on {date} at {time}.",
        )

    booked = count_booked(ctx, service, instant)
    spots = max(service.capacity - booked, 0)
    if spots > 0:
        message = (
            f"Yes! {service.name} is available on {date} at {time}. "
            f"{spots} spot{'s' if spots > 1 else ''} remaining. Price: ${service.price}"
        )
    else:
        message = f"Sorry, {service.name} is fully booked on {date} at {time}. Would you like to try another time?"

    return FunctionResult(
        success=True,
        data={**summary, "available": spots > 0, "booked": booked, "available_spots": spots},
        message=message,
    )


# ── get_booking_slots ───────────────────────────────────────────────


def _minute_key(moment: datetime) -> datetime:
    return moment.astimezone(UTC).replace(second=0, microsecond=0)


def get_booking_slots(params: dict[str, Any], ctx: ToolContext) -> FunctionResult:
    service = resolve_service(ctx, params["service_name"])
    if isinstance(service, FunctionResult):
        return service

    now = ctx.now()
    if params.get("start_date"):
        range_start = datetime.strptime(params["start_date"], "%Y-%m-%d").replace(tzinfo=ctx.tz)
    else:
        range_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if params.get("end_date"):
        range_end = datetime.strptime(params["end_date"], "%Y-%m-%d").replace(tzinfo=ctx.tz) + timedelta(days=1)
    else:
        range_end = range_start + timedelta(days=DEFAULT_SLOT_RANGE_DAYS)

    windows = ctx.calendar.list_events(service.calendar_id, range_start, range_end)
    bookings = ctx.calendar.list_events(ctx.store.invite_calendar_id, range_start, range_end)
    booked_at: Counter[datetime] = Counter()
    for event in bookings:
        start = parse_event_time(event.get("start"))
        if start and is_live_booking(event, service.service_id):
            booked_at[_minute_key(start)] += 1

    slots: list[dict[str, Any]] = []
    for event in windows:
        if event.get("status") == "cancelled":
            continue
        start = parse_event_time(event.get("start"))
        if start is None or start < now:
            continue
        spots = service.capacity - booked_at[_minute_key(start)]
        if spots <= 0:
            continue
        local = start.astimezone(ctx.tz)
        slots.append(
            {
                "date": local.strftime("%Y-%m-%d"),
                "time": local.strftime("%H:%M"),
                "available_spots": spots,
            }
        )
        if len(slots) >= MAX_SLOTS:
            break

    date_range = {
        "from": range_start.strftime("%Y-%m-%d"),
        "to": (range_end - timedelta(days=1)).strftime("%Y-%m-%d"),
    }
    service_info = {"name": service.name, "duration": service.duration, "price": service.price}
    prefill = {
        key: params[f"prefill_{key}"]
        for key in ("date", "time", "name", "email", "phone")
        if params.get(f"prefill_{key}")
    }

    components = []
    if slots:
        components.append(
            make_component(
                "BookingCalendar",
                {"storeId": ctx.store.id, "service": service_info, "slots": slots, "prefill": prefill},
                f"booking-{ctx.store.id}",
            )
        )

    message = (
        f"Found {len(slots)} available slot{'s' if len(slots) != 1 else ''} for {service.name}."
        if slots
        else f"No available slots for {service.name} between {date_range['from']} and {date_range['to']}."
    )
    return FunctionResult(
        success=True,
        data={
            "service": service_info,
            "slots": slots,
            "slotsCount": len(slots),
            "dateRange": date_range,
        },
        message=message,
        components=components,
    )


# ── create_booking ──────────────────────────────────────────────────


def _event_description(ctx: ToolContext, service: BookableService, params: dict[str, Any]) -> str:
    lines = [
        "Booking Confirmation",
        "",
        f"Service: {service.name}",
        f"Price: ${service.price or 'N/A'}",
        f"Duration: {service.duration} minutes",
        "",
        "Customer Details:",
        f"Name: {params['customer_name']}",
        f"Email: {params['customer_email']}",
    ]
    if params.get("customer_phone"):
        lines.append(f"Phone: {params['customer_phone']}")
    lines += [
        "",
        f"Thank you for booking with {ctx.store.name}!",
        "If you need to reschedule or cancel, please contact us.",
    ]
    return "\n".join(lines)


def create_booking(params: dict[str, Any], ctx: ToolContext) -> FunctionResult:
    service = resolve_service(ctx, params["service_name"])
    if isinstance(service, FunctionResult):
        return service

    date, time = params["date"], params["time"]
    instant = requested_instant(ctx, date, time)

    if find_window(ctx, service, instant) is None:
        return FunctionResult.fail(
            "no_class_scheduled",
            f"{service.name} has no class scheduled on {date} at {time}.",
            service_name=service.name,
            date=date,
            time=time,
        )

    booked = count_booked(ctx, service, instant)
    if booked >= service.capacity:
        return FunctionResult.fail(
            "fully_booked",
            f"Sorry, {service.name} is fully booked on {date} at {time}.",
            service_name=service.name,
            date=date,
            time=time,
        )

    booking_id = new_booking_id()
    end = instant + timedelta(minutes=service.duration)
    event = {
        "summary": f"{service.name} - {params['customer_name']}",
        "description": _event_description(ctx, service, params),
        "location": service.row.get("location") or "",
        "start": {"dateTime": instant.isoformat(), "timeZone": ctx.timezone},
        "end": {"dateTime": end.isoformat(), "timeZone": ctx.timezone},
        "attendees": [{"email": params["customer_email"]}],
        "extendedProperties": {
            "private": {
                "booking_id": booking_id,
                "service_id": service.service_id,
                "customer_name": params["customer_name"],
                "customer_email": params["customer_email"],
                "customer_phone": params.get("customer_phone") or "",
                "booked_at": datetime.now(UTC).isoformat(),
            }
        },
    }
    ctx.calendar.create_event(ctx.store.invite_calendar_id, event, send_updates="all")
    logger.info("Booking %s created for %s at %s", booking_id, service.service_id, instant.isoformat())

    return FunctionResult(
        success=True,
        data={
            "booking_id": booking_id,
            "service": service.name,
            "date": date,
            "time": time,
            "duration": service.duration,
            "price": service.price,
            "customer_name": params["customer_name"],
            "customer_email": params["customer_email"],
            "available_spots_remaining": service.capacity - booked - 1,
        },
        message=(
            f"Booking confirmed! You'll receive a calendar invite at {params['customer_email']} "
            f"with all the details. See you on {date} at {time}!"
        ),
    )
