"""Per-tool argument schemas.

Every tool's arguments are a pydantic model.  The same models drive

* dispatch-time validation (:func:`validate_params`), and
* the function schemas exposed to models in the native tool-calling loop
  (see :func:`storechat.tools.registry.tool_specs`).

Class docstrings double as the tool descriptions the model sees.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from storechat.models import ToolName

# RFC 5322-ish pattern — covers the vast majority of real-world emails
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)


def is_valid_email(email: str | None) -> bool:
    return bool(email and _EMAIL_RE.match(email.strip()))


def _check_date(value: str | None) -> str | None:
    if value is None:
        return value
    value = value.strip()
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise ValueError("must be a date in YYYY-MM-DD format") from None
    return value


def _check_time(value: str | None) -> str | None:
    if value is None:
        return value
    value = value.strip()
    try:
        parsed = datetime.strptime(value, "%H:%M")
    except ValueError:
        raise ValueError("must be a time in HH:MM (24h) format") from None
    return parsed.strftime("%H:%M")


class _Args(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


# ── Catalog ─────────────────────────────────────────────────────────


class GetStoreInfo(_Args):
    """Get general store information: opening hours, services, products, or all."""

    info_type: Literal["hours", "services", "products", "all"] = Field(
        "all", description="Which part of the store information to return",
    )


class GetServices(_Args):
    """List the store's services, optionally filtered by category or query."""

    category: str | None = Field(None, description="Category filter (substring match)")
    query: str | None = Field(None, description="Free-text relevance query")


class SearchServices(_Args):
    """Search services by a free-text query (e.g. 'beginner pottery')."""

    query: str = Field(..., min_length=1, description="What the user is looking for")


class GetProducts(_Args):
    """List the store's products, optionally filtered by category or query."""

    category: str | None = Field(None, description="Category filter (substring match)")
    query: str | None = Field(None, description="Free-text relevance query")


class SearchProducts(_Args):
    """Search products by a free-text query."""

    query: str = Field(..., min_length=1, description="What the user is looking for")


class GetMiscData(_Args):
    """Read any other tab of the store's sheet (FAQ, policies, staff...)."""

    tab_name: str = Field(..., min_length=1, description="Name of the tab to read")
    query: str | None = Field(None, description="Only rows containing this text")


# ── Leads ───────────────────────────────────────────────────────────


class SubmitLead(_Args):
    """Capture a customer's contact details so the store can follow up.

    Call without arguments to show a contact form.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="allow")

    name: str | None = Field(None, description="Customer's full name")
    email: str | None = Field(None, description="Customer's email address")
    phone: str | None = Field(None, description="Customer's phone number")
    message: str | None = Field(None, description="What the customer needs")

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str | None) -> str | None:
        if value and not is_valid_email(value):
            raise ValueError(f'"{value}" does not look like a valid email address')
        return value


# ── Booking ─────────────────────────────────────────────────────────


class CheckAvailability(_Args):
    """Check whether a service can be booked at a specific date and time."""

    service_name: str = Field(..., min_length=1)
    date: str = Field(..., description="YYYY-MM-DD")
    time: str = Field(..., description="HH:MM, 24h")

    @field_validator("date")
    @classmethod
    def check_date(cls, value: str) -> str:
        return _check_date(value)

    @field_validator("time")
    @classmethod
    def check_time(cls, value: str) -> str:
        return _check_time(value)


class GetBookingSlots(_Args):
    """Show bookable time slots for a service. Use for any booking request."""

    service_name: str = Field(..., min_length=1)
    start_date: str | None = Field(None, description="YYYY-MM-DD, defaults to today")
    end_date: str | None = Field(None, description="YYYY-MM-DD, defaults to 14 days after start")
    prefill_date: str | None = None
    prefill_time: str | None = None
    prefill_name: str | None = None
    prefill_email: str | None = None
    prefill_phone: str | None = None

    @field_validator("start_date", "end_date")
    @classmethod
    def check_dates(cls, value: str | None) -> str | None:
        return _check_date(value)


class CreateBooking(_Args):
    """Book a service. Only call once name AND email are known."""

    service_name: str = Field(..., min_length=1)
    date: str = Field(..., description="YYYY-MM-DD")
    time: str = Field(..., description="HH:MM, 24h")
    customer_name: str = Field(..., min_length=1)
    customer_email: str = Field(..., min_length=3)
    customer_phone: str | None = None

    @field_validator("date")
    @classmethod
    def check_date(cls, value: str) -> str:
        return _check_date(value)

    @field_validator("time")
    @classmethod
    def check_time(cls, value: str) -> str:
        return _check_time(value)

    @field_validator("customer_email")
    @classmethod
    def check_email(cls, value: str) -> str:
        if not is_valid_email(value):
            raise ValueError(f'"{value}" does not look like a valid email address')
        return value


# ── Recommendations ─────────────────────────────────────────────────


class GetRecommendations(_Args):
    """Recommend services/products matching the user's goals and preferences."""

    goal: str | None = Field(None, description="What the user wants to achieve")
    experience_level: str | None = Field(None, description="beginner | intermediate | advanced | any")
    budget: str | None = Field(None, description="low | medium | high | any")
    budget_max: float | None = Field(None, ge=0)
    category: str | None = None
    offering_type: Literal["services", "products", "both"] = "both"
    time_preference: str | None = Field(None, description="morning | afternoon | evening | any")
    day_preference: str | None = Field(None, description="weekday | weekend | any")
    duration_preference: str | None = Field(None, description="quick | standard | extended | any")
    limit: int = Field(3, ge=1, le=10)


ARG_MODELS: dict[ToolName, type[BaseModel]] = {
    ToolName.GET_STORE_INFO: GetStoreInfo,
    ToolName.GET_SERVICES: GetServices,
    ToolName.SEARCH_SERVICES: SearchServices,
    ToolName.GET_PRODUCTS: GetProducts,
    ToolName.SEARCH_PRODUCTS: SearchProducts,
    ToolName.SUBMIT_LEAD: SubmitLead,
    ToolName.GET_MISC_DATA: GetMiscData,
    ToolName.CHECK_AVAILABILITY: CheckAvailability,
    ToolName.GET_BOOKING_SLOTS: GetBookingSlots,
    ToolName.CREATE_BOOKING: CreateBooking,
    ToolName.GET_RECOMMENDATIONS: GetRecommendations,
}


def _format_error(err: dict[str, Any]) -> str:
    field = ".".join(str(part) for part in err.get("loc", ())) or "arguments"
    msg = str(err.get("msg", "invalid value"))
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    return f"{field}: {msg}"


def validate_params(
    tool: ToolName, params: dict[str, Any] | None,
) -> tuple[dict[str, Any] | None, list[str]]:
    """Validate *params* for *tool*.

    Returns ``(clean_params, [])`` on success or ``(None, errors)`` where
    each error is a ``"field: message"`` string.
    """
    model = ARG_MODELS.get(tool)
    if model is None:
        return None, [f"Unknown function: {tool.value}"]
    # Models often send explicit nulls and empty strings for optional fields
    cleaned = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
    try:
        parsed = model.model_validate(cleaned)
    except PydanticValidationError as exc:
        return None, [_format_error(e) for e in exc.errors()]
    return parsed.model_dump(exclude_none=True), []
