"""Static cost model and per-model reasoning capabilities.

Prices are USD per million tokens as billed by OpenRouter.  Unknown model
ids are priced as ``DEFAULT_MODEL`` so every trace carries a cost figure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from storechat.config import DEFAULT_MODEL
from storechat.models import TokenUsage


@dataclass(frozen=True)
class ModelPricing:
    input: float
    output: float


MODEL_PRICING: dict[str, ModelPricing] = {
    "anthropic/claude-sonnet-4.5": ModelPricing(3.0, 15.0),
    "google/gemini-3-pro-preview": ModelPricing(2.0, 12.0),
    "anthropic/claude-haiku-4.5": ModelPricing(1.0, 5.0),
    "openai/gpt-5.1": ModelPricing(0.30, 1.20),
    "openai/gpt-5.1-chat": ModelPricing(0.30, 1.20),
    "google/gemini-2.5-flash": ModelPricing(0.30, 2.50),
    "deepseek/deepseek-chat-v3.1": ModelPricing(0.27, 1.10),
    "minimax/minimax-m2": ModelPricing(0.26, 1.02),
    "qwen/qwen3-235b-a22b-2507": ModelPricing(0.22, 0.95),
    "x-ai/grok-4.1-fast": ModelPricing(0.20, 0.50),
    "openai/gpt-4o-mini": ModelPricing(0.15, 0.60),
}

_FALLBACK_PRICING = ModelPricing(0.20, 0.50)


def get_model_pricing(model: str | None) -> ModelPricing:
    default = MODEL_PRICING.get(DEFAULT_MODEL, _FALLBACK_PRICING)
    if not model:
        return default
    return MODEL_PRICING.get(model, default)


def calculate_cost(usage: TokenUsage, model: str | None) -> float:
    """USD cost of *usage* on *model*."""
    pricing = get_model_pricing(model)
    return (usage.input / 1_000_000) * pricing.input + (usage.output / 1_000_000) * pricing.output


# ── Reasoning capabilities ──────────────────────────────────────────
#
# OpenRouter exposes a unified ``reasoning`` request field, but models
# disagree on its shape:
#   unified          {"effort": "<level>"}
#   unified_enabled  {"enabled": true}
#   legacy_deepseek  top-level {"include_reasoning": true}

@dataclass(frozen=True)
class ModelCapabilities:
    supports_reasoning: bool
    reasoning_param: str | None = None
    default_effort: str = "medium"


MODEL_CAPABILITIES: dict[str, ModelCapabilities] = {
    "openai/gpt-4o-mini": ModelCapabilities(False),
    "openai/gpt-4o": ModelCapabilities(False),
    "openai/gpt-4-turbo": ModelCapabilities(False),
    "meta-llama/llama-3.1-70b-instruct": ModelCapabilities(False),
    "google/gemini-flash-1.5": ModelCapabilities(False),
    "x-ai/grok-2": ModelCapabilities(True, "unified_enabled"),
    "x-ai/grok-4.1-fast": ModelCapabilities(True, "unified_enabled"),
    "anthropic/claude-3.5-sonnet": ModelCapabilities(True, "unified"),
    "anthropic/claude-3.7-sonnet": ModelCapabilities(True, "unified"),
    "anthropic/claude-sonnet-4": ModelCapabilities(True, "unified"),
    "deepseek/deepseek-r1": ModelCapabilities(True, "legacy_deepseek"),
    "deepseek/deepseek-chat-v3.1": ModelCapabilities(True, "unified"),
    "google/gemini-2.0-flash-thinking-exp": ModelCapabilities(True, "unified"),
}


def supports_reasoning(model: str) -> bool:
    caps = MODEL_CAPABILITIES.get(model)
    return bool(caps and caps.supports_reasoning)


def reasoning_params(model: str, enabled: bool) -> dict[str, Any]:
    """Return the request-body fields that toggle reasoning for *model*.

    Models without reasoning support get an empty dict so the field is
    never sent to providers that reject it.
    """
    caps = MODEL_CAPABILITIES.get(model)
    if not caps or not caps.supports_reasoning:
        return {}
    if caps.reasoning_param == "legacy_deepseek":
        return {"include_reasoning": enabled}
    if caps.reasoning_param == "unified" and enabled:
        return {"reasoning": {"effort": caps.default_effort}}
    return {"reasoning": {"enabled": enabled}}
