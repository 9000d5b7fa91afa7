"""Per-request debug trace in one schema shared by both architectures.

::

    {mode, model, llm_calls,
     durations_ms: {tool_selection, function_execution, response_generation, total},
     tokens:       {tool_selection, response_generation, total}  each {input, output, cached},
     cost_usd:     {tool_selection, response_generation, total},
     function_calls: [ToolCallTrace...],
     steps: [{name, status, duration_ms, function?, detail?}]}

In the classic pipeline ``tool_selection`` is the classifier call; in the
native loop it covers every model call that chose a tool, and the final
text-producing call is ``response_generation``.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from storechat.models import TokenUsage, ToolCallTrace
from storechat.pricing import calculate_cost
from storechat.services.metrics import metrics

TOOL_SELECTION = "tool_selection"
FUNCTION_EXECUTION = "function_execution"
RESPONSE_GENERATION = "response_generation"

STAGES = (TOOL_SELECTION, FUNCTION_EXECUTION, RESPONSE_GENERATION)
MODEL_STAGES = (TOOL_SELECTION, RESPONSE_GENERATION)


def _ms(seconds: float) -> float:
    return round(seconds * 1000, 1)


class TraceBuilder:
    """Accumulates timings, token usage and steps for one request."""

    def __init__(self, mode: str, model: str) -> None:
        self.mode = mode
        self.model = model
        self.llm_calls = 0
        self.durations: dict[str, float] = dict.fromkeys(STAGES, 0.0)
        self.tokens: dict[str, TokenUsage] = {stage: TokenUsage() for stage in MODEL_STAGES}
        self.function_calls: list[ToolCallTrace] = []
        self.steps: list[dict[str, Any]] = []
        self._started = time.perf_counter()

    def add_step(
        self,
        name: str,
        status: str,
        duration_ms: float = 0.0,
        *,
        function: str | None = None,
        detail: str | None = None,
    ) -> None:
        step: dict[str, Any] = {"name": name, "status": status, "duration_ms": round(duration_ms, 1)}
        if function:
            step["function"] = function
        if detail:
            step["detail"] = detail
        self.steps.append(step)

    @contextmanager
    def stage(self, name: str, stage: str | None = None, *, function: str | None = None) -> Iterator[None]:
        """Time a step; failures are recorded as ``error`` steps and re-raised."""
        t0 = time.perf_counter()
        try:
            yield
        except Exception as exc:
            elapsed = time.perf_counter() - t0
            if stage:
                self.durations[stage] += _ms(elapsed)
            self.add_step(name, "error", _ms(elapsed), function=function, detail=f"{type(exc).__name__}: {exc}")
            raise
        elapsed = time.perf_counter() - t0
        if stage:
            self.durations[stage] += _ms(elapsed)
        self.add_step(name, "ok", _ms(elapsed), function=function)

    def add_usage(self, stage: str, usage: TokenUsage) -> None:
        self.tokens[stage] = self.tokens[stage] + usage
        self.llm_calls += 1

    def add_function_call(self, call: ToolCallTrace) -> None:
        self.function_calls.append(call)

    def cost(self, stage: str) -> float:
        return calculate_cost(self.tokens[stage], self.model)

    def finish(self) -> dict[str, Any]:
        """Freeze the trace into its dict form and report stage metrics."""
        total_ms = _ms(time.perf_counter() - self._started)
        costs = {stage: round(self.cost(stage), 8) for stage in MODEL_STAGES}
        total_tokens = TokenUsage()
        for usage in self.tokens.values():
            total_tokens = total_tokens + usage

        for stage in STAGES:
            metrics.record_stage(self.mode, stage, self.durations[stage], costs.get(stage, 0.0))

        return {
            "mode": self.mode,
            "model": self.model,
            "llm_calls": self.llm_calls,
            "durations_ms": {**{s: round(v, 1) for s, v in self.durations.items()}, "total": total_ms},
            "tokens": {
                **{stage: usage.to_dict() for stage, usage in self.tokens.items()},
                "total": total_tokens.to_dict(),
            },
            "cost_usd": {**costs, "total": round(sum(costs.values()), 8)},
            "function_calls": [call.to_dict() for call in self.function_calls],
            "steps": list(self.steps),
        }
