"""Native tool-calling loop: the model picks tools itself.

Each iteration is one completion with every tool spec attached.  When the
model asks for tools, only the first call is executed; its slimmed result
goes back as a ``tool`` message and the loop continues.  A plain-text reply
ends the loop.  Results flagged ``skip_responder`` (or ``awaiting_input``
with a message) end it immediately with that message.

Hitting the iteration cap raises :class:`BudgetExceeded`.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from storechat.config import (
    DEFAULT_MODEL,
    MAX_CONTEXT_MESSAGES,
    NATIVE_MAX_ITERATIONS,
    NATIVE_MAX_TOKENS,
    NATIVE_TEMPERATURE,
)
from storechat.errors import BudgetExceeded
from storechat.models import ChatReply, ChatRequest, FunctionResult, Intent, ToolName
from storechat.orchestrator import BaseOrchestrator
from storechat.prompts import build_native_system_prompt
from storechat.services.llm_client import ToolCall
from storechat.services.store_data import TabLoader
from storechat.slim import slim_result
from storechat.tools.registry import execute_function, tool_specs
from storechat.trace import FUNCTION_EXECUTION, RESPONSE_GENERATION, TOOL_SELECTION, TraceBuilder

logger = logging.getLogger(__name__)

NATIVE_CONFIDENCE = 90


def _assistant_tool_message(call: ToolCall) -> dict[str, Any]:
    return {
        "role": "assistant",
        "content": None,
        "tool_calls": [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.raw_arguments},
            }
        ],
    }


def _tool_message(call: ToolCall, result: FunctionResult) -> dict[str, Any]:
    payload = slim_result(ToolName.parse(call.name), result)
    return {
        "role": "tool",
        "tool_call_id": call.id,
        "content": json.dumps(payload, default=str),
    }


class NativeOrchestrator(BaseOrchestrator):
    mode = "native"

    def __init__(self, loader: TabLoader, *, max_iterations: int = NATIVE_MAX_ITERATIONS, **kwargs: Any) -> None:
        super().__init__(loader, **kwargs)
        self.max_iterations = max_iterations
        self.tools = tool_specs()

    def run(self, request: ChatRequest) -> ChatReply:
        model = request.model or DEFAULT_MODEL
        trace = TraceBuilder(self.mode, model)
        with trace.stage("load_store"):
            ctx = self.build_context(request)

        messages: list[dict[str, Any]] = [
            {"role": "system", "content": build_native_system_prompt(ctx.store, ctx.store_data, today=ctx.now().date())},
            *({"role": t.role, "content": t.content} for t in request.messages[-MAX_CONTEXT_MESSAGES:]),
        ]

        final_text: str | None = None
        last_result: FunctionResult | None = None
        last_function: str | None = None
        components: list[dict[str, Any]] = []

        for iteration in range(1, self.max_iterations + 1):
            with trace.stage(f"llm_call_{iteration}"):
                response = self.llm.complete(
                    messages,
                    model=model,
                    max_tokens=NATIVE_MAX_TOKENS,
                    temperature=NATIVE_TEMPERATURE,
                    tools=self.tools,
                    tool_choice="auto",
                    reasoning_enabled=request.reasoning_enabled,
                )
            llm_ms = trace.steps[-1]["duration_ms"]

            if not response.has_tool_calls:
                trace.durations[RESPONSE_GENERATION] += llm_ms
                trace.add_usage(RESPONSE_GENERATION, response.usage)
                final_text = response.content or ""
                break

            trace.durations[TOOL_SELECTION] += llm_ms
            trace.add_usage(TOOL_SELECTION, response.usage)
            call = response.tool_calls[0]
            if len(response.tool_calls) > 1:
                logger.debug("Model requested %d tool calls; executing only %s", len(response.tool_calls), call.name)

            with trace.stage("dispatch", FUNCTION_EXECUTION, function=call.name):
                result, call_trace = execute_function(call.name, call.arguments, ctx)
            trace.add_function_call(call_trace)
            last_result, last_function = result, call.name
            components.extend(result.components)

            if result.skip_responder or (result.awaiting_input and result.message):
                final_text = result.message or ""
                break

            messages.append(_assistant_tool_message(call))
            messages.append(_tool_message(call, result))
        else:
            trace.add_step("budget", "error", detail=f"no final reply after {self.max_iterations} iterations")
            logger.warning("Native loop for store %s hit its cap of %d", request.store_id, self.max_iterations)
            raise BudgetExceeded(self.max_iterations)

        reply = ChatReply(
            text=final_text,
            intent=(Intent.FUNCTION_CALL if trace.function_calls else Intent.GREETING).value,
            function_called=last_function,
            confidence=NATIVE_CONFIDENCE,
            function_result=last_result,
            components=components,
            debug=trace.finish(),
        )
        logger.info(
            "[native] store=%s llm_calls=%d functions=%s total=%.0fms",
            request.store_id, reply.debug["llm_calls"],
            [c["name"] for c in reply.debug["function_calls"]],
            reply.debug["durations_ms"]["total"],
        )
        self.submit_evaluation(request, reply, self.mode)
        return reply
