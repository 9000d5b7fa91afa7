"""Intent classification: one JSON-mode model call per request.

The classifier decides which tool (if any) should run and extracts its
arguments.  It never retries: a timeout or provider error surfaces as
:class:`ClassificationFailed` and the request fails.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from storechat.config import (
    CLASSIFIER_MAX_TOKENS,
    CLASSIFIER_TEMPERATURE,
    CLASSIFIER_TIMEOUT_SECONDS,
    MAX_CONTEXT_MESSAGES,
)
from storechat.errors import ClassificationFailed, ExternalServiceError, MalformedClassification
from storechat.models import ChatTurn, Classification, Intent, TokenUsage, ToolName
from storechat.prompts import build_classifier_prompt
from storechat.services.llm_client import parse_json_reply

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 80

# Intent implied by the chosen tool when the model omits the label
_TOOL_INTENTS: dict[ToolName, Intent] = {
    ToolName.GET_SERVICES: Intent.SERVICE_INQUIRY,
    ToolName.SEARCH_SERVICES: Intent.SERVICE_INQUIRY,
    ToolName.GET_PRODUCTS: Intent.PRODUCT_INQUIRY,
    ToolName.SEARCH_PRODUCTS: Intent.PRODUCT_INQUIRY,
    ToolName.GET_STORE_INFO: Intent.INFO_REQUEST,
    ToolName.GET_MISC_DATA: Intent.INFO_REQUEST,
    ToolName.CHECK_AVAILABILITY: Intent.BOOKING_REQUEST,
    ToolName.GET_BOOKING_SLOTS: Intent.BOOKING_REQUEST,
    ToolName.CREATE_BOOKING: Intent.BOOKING_REQUEST,
    ToolName.SUBMIT_LEAD: Intent.LEAD_GENERATION,
    ToolName.GET_RECOMMENDATIONS: Intent.RECOMMENDATION_REQUEST,
}


def _clamp_confidence(value: Any) -> int:
    try:
        confidence = int(float(value))
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    return max(0, min(100, confidence))


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def parse_classification(payload: Any) -> Classification:
    """Build a :class:`Classification` from the model's decoded JSON.

    Accepts the legacy ``function``/``parameters`` keys.
    """
    if not isinstance(payload, dict):
        raise MalformedClassification("Classification is not a JSON object", raw=str(payload))

    payload = dict(payload)
    if not payload.get("function_to_call") and "function" in payload:
        payload["function_to_call"] = payload.pop("function")
    if not payload.get("extracted_params") and "parameters" in payload:
        payload["extracted_params"] = payload.pop("parameters")

    if "function_to_call" not in payload or "extracted_params" not in payload:
        raise MalformedClassification(
            "Classification missing required fields: function_to_call or extracted_params",
            raw=str(payload),
        )

    tool = ToolName.parse(payload.get("function_to_call"))
    params = payload.get("extracted_params")
    if not isinstance(params, dict):
        params = {}

    if payload.get("intent"):
        intent = Intent.parse(payload["intent"])
    elif tool is None:
        intent = Intent.OTHER
    else:
        intent = _TOOL_INTENTS.get(tool, Intent.OTHER)

    question = payload.get("clarification_question")
    return Classification(
        intent=intent,
        confidence=_clamp_confidence(payload.get("confidence", DEFAULT_CONFIDENCE)),
        function_to_call=tool,
        extracted_params=params,
        needs_clarification=_flag(payload.get("needs_clarification")),
        clarification_question=question if question not in (None, "", "null") else None,
        user_language=str(payload.get("user_language") or "en"),
        reasoning=payload.get("reasoning"),
    )


def classify(
    messages: list[ChatTurn],
    llm,
    *,
    model: str,
    today: date,
    store_data: dict[str, list[dict[str, Any]]] | None = None,
    include_store_data: bool = True,
    reasoning_enabled: bool = False,
) -> tuple[Classification, TokenUsage]:
    """Classify the last user turn of *messages*.

    Raises :class:`ClassificationFailed` on timeout or provider error,
    :class:`MalformedModelOutput` on invalid JSON and
    :class:`MalformedClassification` when required keys are missing.
    """
    if not messages:
        raise MalformedClassification("No messages to classify")
    current = messages[-1].content
    prompt = build_classifier_prompt(
        messages[:-1],
        current,
        today=today,
        store_data=store_data if include_store_data else None,
        history_limit=MAX_CONTEXT_MESSAGES,
    )

    try:
        response = llm.complete(
            [{"role": "user", "content": prompt}],
            model=model,
            max_tokens=CLASSIFIER_MAX_TOKENS,
            temperature=CLASSIFIER_TEMPERATURE,
            json_mode=True,
            reasoning_enabled=reasoning_enabled,
            timeout=CLASSIFIER_TIMEOUT_SECONDS,
        )
    except ExternalServiceError as exc:
        raise ClassificationFailed(
            f"Classification failed: {exc}",
            service=exc.service,
            status_code=exc.status_code,
        ) from exc

    classification = parse_classification(parse_json_reply(response.content))
    logger.info(
        "Classified as %s -> %s (confidence %d, lang %s)",
        classification.intent.value,
        classification.function_to_call.value if classification.function_to_call else None,
        classification.confidence,
        classification.user_language,
    )
    return classification, response.usage
