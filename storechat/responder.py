"""Natural-language reply generation for results without a template."""

from __future__ import annotations

import logging

from storechat.config import MAX_CONTEXT_MESSAGES, RESPONDER_MAX_TOKENS, RESPONDER_TEMPERATURE
from storechat.errors import MalformedModelOutput
from storechat.models import ChatTurn, Classification, FunctionResult, Intent, Store, TokenUsage
from storechat.prompts import build_responder_prompt, function_context
from storechat.services.llm_client import parse_json_reply
from storechat.slim import slim_data

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 4

FALLBACK_SUGGESTIONS: dict[Intent, list[str]] = {
    Intent.SERVICE_INQUIRY: ["Book a service", "See prices", "Show all services"],
    Intent.PRODUCT_INQUIRY: ["Show all products", "What's in stock?", "Any recommendations?"],
    Intent.INFO_REQUEST: ["Opening hours", "What services do you offer?", "Contact us"],
    Intent.BOOKING_REQUEST: ["Show available times", "Check another date", "See all services"],
    Intent.LEAD_GENERATION: ["Leave my details", "See services", "Opening hours"],
    Intent.RECOMMENDATION_REQUEST: ["I'm a beginner", "Something budget-friendly", "Evening options"],
    Intent.GREETING: ["What do you offer?", "Opening hours", "Book a service"],
    Intent.OTHER: ["What do you offer?", "Opening hours", "Talk to someone"],
}


def fallback_suggestions(intent: Intent) -> list[str]:
    return list(FALLBACK_SUGGESTIONS.get(intent, FALLBACK_SUGGESTIONS[Intent.OTHER]))


def _context_block(classification: Classification, result: FunctionResult | None) -> str:
    tool = classification.function_to_call
    name = tool.value if tool else None
    if result is None:
        if classification.needs_clarification:
            return function_context(
                name, None, needs_info=classification.clarification_question or "More information required",
            )
        return ""
    if result.needs_clarification or result.awaiting_input:
        return function_context(name, result.success, needs_info=result.message or "More information required")
    if result.success:
        return function_context(name, True, slim_data(tool, result))
    return function_context(name, False, error=result.error or result.message)


def respond(
    messages: list[ChatTurn],
    classification: Classification,
    result: FunctionResult | None,
    llm,
    *,
    store: Store | None,
    model: str,
) -> tuple[str, list[str], TokenUsage]:
    """Generate the reply text and follow-up suggestions."""
    prompt = build_responder_prompt(
        store,
        messages,
        intent=classification.intent.value,
        tool=classification.function_to_call.value if classification.function_to_call else None,
        language=classification.user_language,
        context_block=_context_block(classification, result),
        history_limit=MAX_CONTEXT_MESSAGES,
    )
    response = llm.complete(
        [{"role": "user", "content": prompt}],
        model=model,
        max_tokens=RESPONDER_MAX_TOKENS,
        temperature=RESPONDER_TEMPERATURE,
        json_mode=True,
    )

    raw = (response.content or "").strip()
    try:
        parsed = parse_json_reply(raw)
    except MalformedModelOutput:
        logger.warning("Responder reply was not JSON, using raw text")
        return raw, fallback_suggestions(classification.intent), response.usage

    if not isinstance(parsed, dict):
        return raw, fallback_suggestions(classification.intent), response.usage

    text = str(parsed.get("response") or raw)
    suggestions = parsed.get("suggestions")
    if not isinstance(suggestions, list):
        suggestions = fallback_suggestions(classification.intent)
    return text, [str(s) for s in suggestions][:MAX_SUGGESTIONS], response.usage
