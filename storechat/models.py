"""Core request-scoped data types.

Everything here lives for one request only, except what the cache layer
stores.  ``FunctionResult.from_raw`` is the single place where handler
output is normalised; downstream code (templates, slimming, responder,
native loop) can rely on the canonical shape.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class ToolName(str, Enum):
    """Closed set of business functions the engine can dispatch."""

    GET_STORE_INFO = "get_store_info"
    GET_SERVICES = "get_services"
    SEARCH_SERVICES = "search_services"
    GET_PRODUCTS = "get_products"
    SEARCH_PRODUCTS = "search_products"
    SUBMIT_LEAD = "submit_lead"
    GET_MISC_DATA = "get_misc_data"
    CHECK_AVAILABILITY = "check_availability"
    GET_BOOKING_SLOTS = "get_booking_slots"
    CREATE_BOOKING = "create_booking"
    GET_RECOMMENDATIONS = "get_recommendations"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, name: str | None) -> ToolName | None:
        """Map a model-supplied name to a member; ``None`` stays ``None``."""
        if name is None:
            return None
        cleaned = str(name).strip()
        if not cleaned or cleaned.lower() in ("null", "none"):
            return None
        try:
            return cls(cleaned)
        except ValueError:
            return cls.UNKNOWN


class Intent(str, Enum):
    SERVICE_INQUIRY = "SERVICE_INQUIRY"
    PRODUCT_INQUIRY = "PRODUCT_INQUIRY"
    INFO_REQUEST = "INFO_REQUEST"
    BOOKING_REQUEST = "BOOKING_REQUEST"
    LEAD_GENERATION = "LEAD_GENERATION"
    RECOMMENDATION_REQUEST = "RECOMMENDATION_REQUEST"
    GREETING = "GREETING"
    OTHER = "OTHER"
    # Native loop only
    FUNCTION_CALL = "FUNCTION_CALL"

    @classmethod
    def parse(cls, label: str | None) -> Intent:
        try:
            return cls(str(label).strip().upper())
        except ValueError:
            return cls.OTHER


@dataclass
class ChatTurn:
    role: str
    content: str


@dataclass(frozen=True)
class Classification:
    """Result of the classifier call.  Immutable once produced."""

    intent: Intent
    confidence: int
    function_to_call: ToolName | None
    extracted_params: dict[str, Any] = field(default_factory=dict)
    needs_clarification: bool = False
    clarification_question: str | None = None
    user_language: str = "en"
    reasoning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent": self.intent.value,
            "confidence": self.confidence,
            "function_to_call": self.function_to_call.value if self.function_to_call else None,
            "extracted_params": self.extracted_params,
            "needs_clarification": self.needs_clarification,
            "clarification_question": self.clarification_question,
            "user_language": self.user_language,
            "reasoning": self.reasoning,
        }


_RESULT_FLAGS = ("skip_responder", "needs_clarification", "awaiting_input")


@dataclass
class FunctionResult:
    """Canonical outcome of one tool execution.

    ``awaiting_input`` is not a failure: the dialogue needs more input from
    the user.  ``skip_responder`` means ``message`` is the final reply.
    """

    success: bool
    data: Any = None
    error: str | None = None
    message: str | None = None
    skip_responder: bool = False
    needs_clarification: bool = False
    awaiting_input: bool = False
    components: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def fail(cls, error: str, message: str | None = None, **data: Any) -> FunctionResult:
        return cls(success=False, error=error, message=message, data=data or None)

    @classmethod
    def from_raw(cls, raw: Any) -> FunctionResult:
        """Normalise a handler return value into a ``FunctionResult``.

        Handlers may return a ``FunctionResult`` or a plain dict.  Dicts
        either wrap their payload in ``data`` or put business fields at the
        top level; the latter are collected into ``data``.
        """
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, dict):
            return cls(success=raw is not None, data=raw)

        payload = dict(raw)
        success = bool(payload.pop("success", False))
        error = payload.pop("error", None)
        message = payload.pop("message", None)
        flags = {name: bool(payload.pop(name, False)) for name in _RESULT_FLAGS}
        components = payload.pop("components", None) or payload.pop("ui_components", None) or []

        if "data" in payload and len(payload) == 1:
            data = payload["data"]
        else:
            data = payload or None

        return cls(
            success=success,
            data=data,
            error=str(error) if error is not None else None,
            message=message,
            components=list(components),
            **flags,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def make_component(component_type: str, props: dict[str, Any], component_id: str | None = None) -> dict[str, Any]:
    """Build a UI component descriptor ``{id, type, props}``."""
    return {
        "id": component_id or f"{component_type.lower()}-1",
        "type": component_type,
        "props": props,
    }


@dataclass
class TokenUsage:
    input: int = 0
    output: int = 0
    cached: int = 0

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            self.input + other.input,
            self.output + other.output,
            self.cached + other.cached,
        )

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class ToolCallTrace:
    name: str
    arguments: dict[str, Any]
    duration_ms: float
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _json_field(value: Any, default: Any) -> Any:
    if value in (None, ""):
        return default
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return default
    return value


@dataclass
class Store:
    """A store profile row from the ``stores`` table."""

    id: str
    name: str = ""
    type: str = ""
    description: str = ""
    sheet_id: str | None = None
    # tab name -> {"columns": [...], "sample_rows": [...]}
    detected_schema: dict[str, Any] = field(default_factory=dict)
    # availability calendar id -> service id
    calendar_mappings: dict[str, str] = field(default_factory=dict)
    invite_calendar_id: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Store:
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            type=row.get("type") or "",
            description=row.get("description") or "",
            sheet_id=row.get("sheet_id"),
            detected_schema=_json_field(row.get("detected_schema"), {}),
            calendar_mappings=_json_field(row.get("calendar_mappings"), {}),
            invite_calendar_id=row.get("invite_calendar_id"),
        )


@dataclass
class ChatRequest:
    """One chat turn as received from a caller."""

    messages: list[ChatTurn]
    store_id: str
    model: str | None = None
    reasoning_enabled: bool = False
    # Caller-supplied rows: {"services": [...], "products": [...], "hours": [...]}
    cached_data: dict[str, Any] | None = None
    include_store_data: bool = True


@dataclass
class ChatReply:
    text: str
    intent: str
    function_called: str | None = None
    confidence: int | None = None
    function_result: FunctionResult | None = None
    suggestions: list[str] = field(default_factory=list)
    components: list[dict[str, Any]] = field(default_factory=list)
    debug: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Wire form (camelCase keys) returned by the HTTP API."""
        return {
            "text": self.text,
            "intent": self.intent,
            "functionCalled": self.function_called,
            "confidence": self.confidence,
            "functionResult": self.function_result.to_dict() if self.function_result else None,
            "suggestions": self.suggestions,
            "components": self.components,
            "debug": self.debug,
        }
