"""OpenRouter chat-completions client.

One synchronous ``complete()`` call covers the three ways the engine talks
to a model:

* JSON-mode completions (classifier, responder, matcher, evaluator)
* native tool-calling (``tools`` + ``tool_choice``)
* plain text

Completion calls are **never** retried here: a failed classification or
tool-selection surfaces immediately and the caller decides what to do.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Any

from storechat.config import (
    DEFAULT_MODEL,
    OPENROUTER_API_KEY,
    OPENROUTER_BASE_URL,
    OPENROUTER_REFERER,
    OPENROUTER_TITLE,
)
from storechat.errors import MalformedModelOutput
from storechat.models import TokenUsage
from storechat.pricing import reasoning_params
from storechat.services.http import HTTPServiceClient

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any]
    raw_arguments: str = "{}"


@dataclass
class LLMResponse:
    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str | None = None
    model: str | None = None

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


def _parse_usage(usage: dict[str, Any] | None) -> TokenUsage:
    usage = usage or {}
    details = usage.get("prompt_tokens_details") or {}
    return TokenUsage(
        input=int(usage.get("prompt_tokens") or 0),
        output=int(usage.get("completion_tokens") or 0),
        cached=int(details.get("cached_tokens") or 0),
    )


def _parse_tool_calls(raw_calls: list[dict[str, Any]] | None) -> list[ToolCall]:
    calls: list[ToolCall] = []
    for raw in raw_calls or []:
        fn = raw.get("function") or {}
        raw_args = fn.get("arguments") or "{}"
        try:
            args = json.loads(raw_args) if isinstance(raw_args, str) else dict(raw_args)
        except ValueError:
            logger.warning("Tool call %s had unparseable arguments: %r", fn.get("name"), raw_args)
            args = {}
        calls.append(
            ToolCall(
                id=raw.get("id") or f"call_{len(calls)}",
                name=fn.get("name") or "",
                arguments=args if isinstance(args, dict) else {},
                raw_arguments=raw_args if isinstance(raw_args, str) else json.dumps(raw_args),
            )
        )
    return calls


# ── JSON reply parsing ──────────────────────────────────────────────

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_LINE_COMMENT_RE = re.compile(r"//[^\n]*")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text.strip()).strip()


def parse_json_reply(text: str | None, *, lenient: bool = False) -> Any:
    """Parse a model reply that should be JSON.

    ``lenient`` additionally removes ``//`` and ``/* */`` comments and
    trailing commas, which some models emit despite JSON mode.

    Raises :class:`MalformedModelOutput` when the text is not valid JSON.
    """
    if not text:
        raise MalformedModelOutput("Model returned an empty reply", raw=text)
    cleaned = strip_code_fences(text)
    if lenient:
        cleaned = _BLOCK_COMMENT_RE.sub("", cleaned)
        cleaned = _LINE_COMMENT_RE.sub("", cleaned)
        cleaned = _TRAILING_COMMA_RE.sub(r"\1", cleaned)
    try:
        return json.loads(cleaned)
    except ValueError as exc:
        raise MalformedModelOutput(f"Model reply is not valid JSON: {exc}", raw=text) from exc


class LLMClient(HTTPServiceClient):
    """Synchronous OpenRouter client (OpenAI-compatible wire format)."""

    service_name = "openrouter"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(
            base_url or OPENROUTER_BASE_URL,
            headers={
                "Authorization": f"Bearer {api_key or OPENROUTER_API_KEY}",
                "HTTP-Referer": OPENROUTER_REFERER,
                "X-Title": OPENROUTER_TITLE,
            },
            timeout=timeout,
            max_retries=1,
        )

    def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None = None,
        max_tokens: int = 500,
        temperature: float = 0.7,
        json_mode: bool = False,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | dict[str, Any] | None = None,
        reasoning_enabled: bool = False,
        timeout: float | None = None,
    ) -> LLMResponse:
        """Run one chat completion and return the first choice."""
        model = model or DEFAULT_MODEL
        body: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            **reasoning_params(model, reasoning_enabled),
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}
        if tools:
            body["tools"] = tools
            body["tool_choice"] = tool_choice or "auto"

        data = self._request("POST", "/chat/completions", json_body=body, timeout=timeout) or {}
        choices = data.get("choices") or []
        if not choices:
            raise MalformedModelOutput("Completion response has no choices", raw=json.dumps(data)[:500])

        message = choices[0].get("message") or {}
        response = LLMResponse(
            content=message.get("content"),
            tool_calls=_parse_tool_calls(message.get("tool_calls")),
            usage=_parse_usage(data.get("usage")),
            finish_reason=choices[0].get("finish_reason"),
            model=data.get("model", model),
        )
        logger.debug(
            "LLM %s: %d in / %d out tokens, %d tool call(s)",
            model, response.usage.input, response.usage.output, len(response.tool_calls),
        )
        return response


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: LLMClient | None = None
_client_lock = threading.Lock()


def get_llm_client() -> LLMClient:
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = LLMClient()
    return _client
