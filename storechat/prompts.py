"""Prompt templates for the classifier, the responder and the native loop."""

from __future__ import annotations

import json
from datetime import date, timedelta
from typing import Any

from storechat.models import ChatTurn, Store

CLASSIFIER_PROMPT_VERSION = "slim-v3"

CLASSIFIER_PROMPT_TEMPLATE = """Classify user intent and extract parameters for function calling.

CONVERSATION: {history}
CURRENT: "{message}"
TODAY: {today} | TOMORROW: {tomorrow}
{store_summary}
FUNCTIONS:
- get_store_info: Store details, hours, info
- get_services: List all services
- get_products: List all products
- search_services: Search services (query param required)
- search_products: Search products (query param required)
- submit_lead: Capture contact info
- get_misc_data: Custom tabs/FAQ/Policies
- check_availability: Check availability at specific date/time
- create_booking: Create booking (requires service_name, date, time, customer_name, customer_email)
- get_booking_slots: Show booking calendar (use for booking intent)
- get_recommendations: Suggest items based on needs

BOOKING:
- "I want to book" or "Can I book" -> get_booking_slots (NOT check_availability)
- "Is X available on Y?" -> check_availability
- Complete booking from calendar UI -> create_booking
- NEVER call create_booking without customer_name AND customer_email

LEADS: user wants to be contacted -> ALWAYS submit_lead (it returns a form if info is missing)
RECOMMENDATIONS: user asks for suggestions or help choosing -> ALWAYS get_recommendations

PARAMS (by function):
- get_store_info: info_type ('hours'|'services'|'products'|'all')
- search_*: query (search term)
- get_services/get_products: category, query (optional)
- get_misc_data: tab_name, query (optional)
- check_availability/create_booking: service_name, date (YYYY-MM-DD), time (HH:MM)
- create_booking: customer_name, customer_email, customer_phone (optional)
- get_booking_slots: service_name, start_date, end_date, prefill_date, prefill_time, prefill_name, prefill_email, prefill_phone
- get_recommendations: goal, experience_level, budget, budget_max, category, offering_type, time_preference, day_preference, duration_preference, limit
- submit_lead: name, email, phone, message

EXTRACTION:
- Parse relative dates to YYYY-MM-DD format
- Copy key="value" pairs from form submissions into extracted_params verbatim
- Extract only what user stated (no hallucination)
- For greetings: respond conversationally, no function

INTENTS: SERVICE_INQUIRY, PRODUCT_INQUIRY, INFO_REQUEST, BOOKING_REQUEST, LEAD_GENERATION, RECOMMENDATION_REQUEST, GREETING, OTHER

LANGUAGE: Detect user's language (ISO 639-1 code like 'en', 'es', 'fr', 'ja'). Default: 'en'

OUTPUT JSON:
{{
  "intent": string,
  "confidence": number (0-100),
  "needs_clarification": boolean,
  "clarification_question": string|null,
  "function_to_call": string|null,
  "extracted_params": object,
  "user_language": string,
  "reasoning": string
}}

JSON ONLY (no markdown, no explanations):"""

RESPONDER_PROMPT_TEMPLATE = """You are a helpful business assistant for {store_name}.

CONTEXT:
{store_context}
Intent: {intent} | Tool: {tool} | Language: {language}

CONVERSATION:
{history}
{function_context}{language_instruction}

INSTRUCTIONS:
- Be warm, concise (<200 words), and professional
- Present any data naturally; guide user to next steps
- If error occurred, apologize and help recover
- Never mention system internals (tools, functions)
- When listing services/products, show 3-4 highlights maximum, not the full list
- DO NOT include image URLs or markdown images in your response
- Use emojis sparingly and appropriately

Respond in JSON only:
{{"response": "...", "suggestions": ["3-5 word follow-up", "another option", "third option"]}}"""

NATIVE_SYSTEM_PROMPT_TEMPLATE = """You are a helpful assistant for {store_name}. Help customers with their questions about services, products, bookings, and store information.

Be friendly, helpful, and conversational. When you need specific data, use the available tools.

IMPORTANT RULES:
- For booking requests, ALWAYS use get_booking_slots (not check_availability) to show the calendar
- For browsing ALL services, use get_services (returns complete list)
- For SPECIFIC service searches (e.g., "beginner classes", "relaxing"), use search_services with query
- For browsing ALL products, use get_products (returns complete list)
- For SPECIFIC product searches, use search_products with query
- For hours/contact/general info, use get_store_info
- For lead capture (user wants to be contacted), use submit_lead
- For suggestions or help choosing, use get_recommendations
- Only use create_booking when you have ALL required fields (service_name, date, time, customer_name, customer_email)
- For greetings like "hi" or "hello", respond conversationally without using tools
- Keep replies under 200 words and never mention tools or functions

TODAY'S DATE: {today}
{store_summary}"""


# ── Shared helpers ───────────────────────────────────────────────────


def _is_open(hour: dict[str, Any]) -> bool:
    return hour.get("isOpen") in (True, "Yes", "yes", "TRUE", "true")


def store_summary(store_data: dict[str, list[dict[str, Any]]] | None, limit: int = 5) -> str:
    """Short text block listing the first few services, products and open hours."""
    if not store_data:
        return ""
    lines: list[str] = []
    for key, label, name_field in (
        ("services", "Services", "serviceName"),
        ("products", "Products", "name"),
    ):
        rows = store_data.get(key) or []
        if not rows:
            continue
        lines.append(f"\nAvailable {label} ({len(rows)} total):")
        for row in rows[:limit]:
            name = row.get(name_field) or row.get("name") or row.get("serviceName")
            lines.append(f"- {name}: ${row.get('price') or 'Price varies'}")
        if len(rows) > limit:
            lines.append(f"  ...and {len(rows) - limit} more")
    hours = [h for h in store_data.get("hours") or [] if _is_open(h)]
    if hours:
        lines.append("\nStore Hours:")
        lines.extend(f"- {h.get('day')}: {h.get('openTime')} - {h.get('closeTime')}" for h in hours)
    return "\n".join(lines) + "\n" if lines else ""


def format_history(messages: list[ChatTurn], limit: int) -> str:
    recent = messages[-limit:] if limit else messages
    return "\n".join(f"{turn.role}: {turn.content}" for turn in recent)


# ── Builders ─────────────────────────────────────────────────────────


def build_classifier_prompt(
    messages: list[ChatTurn],
    message: str,
    *,
    today: date,
    store_data: dict[str, list[dict[str, Any]]] | None,
    history_limit: int,
) -> str:
    return CLASSIFIER_PROMPT_TEMPLATE.format(
        history=format_history(messages, history_limit) or "(none)",
        message=message,
        today=today.isoformat(),
        tomorrow=(today + timedelta(days=1)).isoformat(),
        store_summary=store_summary(store_data),
    )


def store_context(store: Store | None) -> str:
    if store is None:
        return "Store: Unknown"
    parts = [f"Store: {store.name or 'Unknown'}", f"Type: {store.type or 'general'}"]
    if store.description:
        parts.append(f"About: {store.description}")
    return " | ".join(parts)


def function_context(
    tool: str | None,
    success: bool | None,
    slim_payload: Any = None,
    *,
    needs_info: str | None = None,
    error: str | None = None,
) -> str:
    """DATA / NEEDS INFO / ERROR block describing what the tool returned."""
    prefix = f"[{tool}] " if tool else ""
    if needs_info:
        return f"\n{prefix}NEEDS INFO: {needs_info}"
    if success is None:
        return ""
    if success:
        return f"\n{prefix}DATA:\n{json.dumps(slim_payload, default=str, separators=(',', ':'))}"
    return f"\n{prefix}ERROR: {error or 'Operation failed'}"


def build_responder_prompt(
    store: Store | None,
    messages: list[ChatTurn],
    *,
    intent: str,
    tool: str | None,
    language: str,
    context_block: str,
    history_limit: int,
) -> str:
    language_instruction = f"\n\nRespond entirely in {language}." if language and language != "en" else ""
    return RESPONDER_PROMPT_TEMPLATE.format(
        store_name=(store.name if store and store.name else "this store"),
        store_context=store_context(store),
        intent=intent,
        tool=tool or "none",
        language=language or "en",
        history=format_history(messages, history_limit),
        function_context=context_block,
        language_instruction=language_instruction,
    )


def build_native_system_prompt(
    store: Store,
    store_data: dict[str, list[dict[str, Any]]] | None,
    *,
    today: date,
) -> str:
    return NATIVE_SYSTEM_PROMPT_TEMPLATE.format(
        store_name=store.name or "our store",
        today=today.isoformat(),
        store_summary=store_summary(store_data),
    )
