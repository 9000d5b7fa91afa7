"""Deterministic reply templates.

For the tools listed in ``TEMPLATE_TOOLS`` the reply text is a fixed
string built from the result, so no responder model call is needed.
``render_template`` returns ``None`` whenever the caller should fall back
to the responder: the tool is not whitelisted, or rendering raised.

Search tools and ``get_misc_data`` are intentionally absent: their output
is open-ended and reads better when the responder summarises it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from storechat.models import FunctionResult, ToolName

logger = logging.getLogger(__name__)


def _data(result: FunctionResult) -> dict[str, Any]:
    return result.data if isinstance(result.data, dict) else {}


def _catalog(kind: str, plural: str):
    def render(result: FunctionResult, args: dict[str, Any]) -> str:
        items = _data(result).get(plural) or []
        query = args.get("query") or args.get("category")
        suffix = f' matching "{query}"' if query else ""
        if not result.success or not items:
            return f"Sorry, no {plural} found{suffix}. Would you like to see all our {plural}?"
        count = len(items)
        verb, noun = ("is", kind) if count == 1 else ("are", plural)
        return f"Here {verb} {count} {noun}{suffix}:"

    return render


def _store_info(result: FunctionResult, args: dict[str, Any]) -> str:
    if not result.success:
        return "Sorry, I couldn't retrieve the store information. Please try again."
    return "Here's what you need to know:"


def _submit_lead(result: FunctionResult, args: dict[str, Any]) -> str:
    if not result.success:
        return "Sorry, there was a problem submitting your information. Please try again."
    if result.awaiting_input:
        return "Please fill in your details below:"
    name = _data(result).get("name") or args.get("name") or "there"
    return (
        f"Thanks for reaching out, {name}! We've received your information "
        "and will get back to you soon."
    )


def _check_availability(result: FunctionResult, args: dict[str, Any]) -> str:
    data = _data(result)
    service = data.get("service") or args.get("service_name") or "This service"
    date = data.get("date") or args.get("date")
    time = data.get("time") or args.get("time")
    when = f"{date} at {time}" if time else f"{date}"
    if result.success and data.get("available"):
        return f"**{service}** is available on {when}! Would you like to book it?"
    if not result.success:
        return result.message or f"Sorry, **{service}** is not available on {when}. Would you like to check another date?"
    return f"Sorry, **{service}** is not available on {when}. Would you like to check another date?"


def _booking_slots(result: FunctionResult, args: dict[str, Any]) -> str:
    data = _data(result)
    service = data.get("service") or {}
    name = service.get("name") if isinstance(service, dict) else service
    if not result.success or not data.get("slots"):
        if not result.success and result.message:
            return result.message
        return (
            f"Sorry, no available slots found for {name or args.get('service_name') or 'this service'}. "
            "Would you like to try a different date?"
        )
    return f"Here are the available times for **{name}**. Select a slot to continue:"


def _create_booking(result: FunctionResult, args: dict[str, Any]) -> str:
    data = _data(result)
    service = data.get("service") or data.get("service_name") or args.get("service_name")
    date = data.get("date") or args.get("date")
    time = data.get("time") or args.get("time")
    if not result.success:
        if result.error == "fully_booked":
            return f"Sorry, **{service}** is fully booked on {date} at {time}. Would you like to try another time?"
        if result.error == "no_class_scheduled":
            return (
                f"Sorry, **{service}** doesn't have any classes scheduled on {date} at {time}. "
                "Would you like to try a different date?"
            )
        return f"Sorry, we couldn't complete your booking. {result.message or 'Please try again.'}"
    customer = data.get("customer_name") or args.get("customer_name")
    return (
        "Booking confirmed!\n\n"
        f"**{service}**\n{date} at {time}\n{customer}\n\n"
        "A confirmation has been saved. See you there!"
    )


def _recommendations(result: FunctionResult, args: dict[str, Any]) -> str:
    if result.awaiting_input:
        return result.message or "Tell us a bit about what you're looking for:"
    if not result.success or not _data(result).get("recommendations"):
        return (
            "I couldn't find specific recommendations based on your preferences. "
            "Would you like to tell me more about what you're looking for?"
        )
    return "Based on what you've shared, here are my top recommendations for you:"


Renderer = Callable[[FunctionResult, dict[str, Any]], str]

TEMPLATES: dict[ToolName, Renderer] = {
    ToolName.GET_PRODUCTS: _catalog("product", "products"),
    ToolName.GET_SERVICES: _catalog("service", "services"),
    ToolName.GET_STORE_INFO: _store_info,
    ToolName.SUBMIT_LEAD: _submit_lead,
    ToolName.CHECK_AVAILABILITY: _check_availability,
    ToolName.GET_BOOKING_SLOTS: _booking_slots,
    ToolName.CREATE_BOOKING: _create_booking,
    ToolName.GET_RECOMMENDATIONS: _recommendations,
}

TEMPLATE_TOOLS = frozenset(TEMPLATES)


def render_template(
    tool: ToolName | str | None,
    result: FunctionResult,
    args: dict[str, Any] | None = None,
) -> str | None:
    """Fixed reply text for *tool*'s *result*, or ``None`` to use the responder."""
    if tool is None:
        return None
    tool = tool if isinstance(tool, ToolName) else ToolName.parse(tool)
    renderer = TEMPLATES.get(tool)
    if renderer is None:
        return None
    try:
        return renderer(result, args or {})
    except Exception:
        logger.warning("Template for %s failed, falling back to responder", tool.value, exc_info=True)
        return None
