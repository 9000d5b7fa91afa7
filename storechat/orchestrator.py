"""Classic classifier + responder pipeline, built as a LangGraph StateGraph.

Nodes:

    1. **classify**  - one JSON-mode model call picks a tool and its arguments
    2. **dispatch**  - runs the tool through the registry
    3. **respond**   - fixed template when one exists, else the responder model

Routing:
    classify -> (no tool / needs clarification) -> respond -> END
    classify -> dispatch -> (skip_responder?) -> END
                         -> respond -> END

``phase`` in the graph state names where a request is
(classifying, dispatching, responding, skip_responder, done); an exception
in any node records an ``error`` step in the trace and propagates.

Nothing is checkpointed: the graph state lives for one request.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

from langgraph.graph import END, StateGraph
from typing_extensions import TypedDict

from storechat.classifier import classify
from storechat.config import DEFAULT_MODEL
from storechat.errors import ValidationError
from storechat.evaluator import EvaluationJob, EvaluationWorker
from storechat.models import (
    ChatReply,
    ChatRequest,
    Classification,
    FunctionResult,
    Intent,
    Store,
    ToolName,
)
from storechat.responder import fallback_suggestions, respond
from storechat.services.store_data import TabLoader
from storechat.templates import TEMPLATE_TOOLS, render_template
from storechat.tools.context import ToolContext, default_calendar
from storechat.tools.registry import execute_function
from storechat.trace import FUNCTION_EXECUTION, RESPONSE_GENERATION, TOOL_SELECTION, TraceBuilder

logger = logging.getLogger(__name__)


class ChatState(TypedDict, total=False):
    request: ChatRequest
    ctx: ToolContext
    trace: TraceBuilder
    model: str
    phase: str
    classification: Classification
    result: FunctionResult | None
    text: str
    suggestions: list[str]


class BaseOrchestrator:
    """Shared request setup: store lookup, warm data, tool context, QA hand-off."""

    mode = "base"

    def __init__(
        self,
        loader: TabLoader,
        *,
        db=None,
        llm=None,
        evaluator: EvaluationWorker | None = None,
        calendar_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.loader = loader
        self._db = db
        self._llm = llm
        self.evaluator = evaluator
        self._calendar_factory = calendar_factory or default_calendar

    @property
    def db(self):
        if self._db is None:
            from storechat.services.database import get_database

            self._db = get_database()
        return self._db

    @property
    def llm(self):
        if self._llm is None:
            from storechat.services.llm_client import get_llm_client

            self._llm = get_llm_client()
        return self._llm

    def load_store(self, store_id: str) -> Store:
        return self.db.get_store(store_id)

    def build_context(self, request: ChatRequest, *, preload: bool = True) -> ToolContext:
        """Resolve the store and (optionally) warm services/products/hours."""
        store = self.load_store(request.store_id)
        if preload:
            store_data = self.loader.load_store_data(store, request.cached_data)
        else:
            store_data = {k: list(v) for k, v in (request.cached_data or {}).items() if v}
        return ToolContext(
            store=store,
            loader=self.loader,
            llm=self.llm,
            model=request.model or DEFAULT_MODEL,
            store_data=store_data,
            messages=list(request.messages),
            calendar_factory=self._calendar_factory,
        )

    def submit_evaluation(self, request: ChatRequest, reply: ChatReply, mode: str) -> None:
        if self.evaluator is None or not request.messages:
            return
        self.evaluator.submit(
            EvaluationJob(
                request_id=uuid.uuid4().hex[:12],
                store_id=request.store_id,
                mode=mode,
                user_message=request.messages[-1].content,
                reply=reply.text,
                function_called=reply.function_called,
            )
        )


class ClassicOrchestrator(BaseOrchestrator):
    mode = "classic"

    def __init__(self, loader: TabLoader, **kwargs: Any) -> None:
        super().__init__(loader, **kwargs)
        self.graph = self._build_graph()

    # ── Nodes ────────────────────────────────────────────────────────

    def _classify_node(self, state: ChatState) -> dict:
        request, ctx, trace = state["request"], state["ctx"], state["trace"]
        with trace.stage("classify", TOOL_SELECTION):
            classification, usage = classify(
                request.messages,
                self.llm,
                model=state["model"],
                today=ctx.now().date(),
                store_data=ctx.store_data,
                include_store_data=request.include_store_data,
                reasoning_enabled=request.reasoning_enabled,
            )
        trace.add_usage(TOOL_SELECTION, usage)
        return {"classification": classification, "phase": "dispatching"}

    def _dispatch_node(self, state: ChatState) -> dict:
        classification, trace = state["classification"], state["trace"]
        tool = classification.function_to_call
        with trace.stage("dispatch", FUNCTION_EXECUTION, function=tool.value):
            result, call = execute_function(tool, classification.extracted_params, state["ctx"])
        trace.add_function_call(call)
        if result.skip_responder:
            return {
                "result": result,
                "text": result.message or "",
                "suggestions": fallback_suggestions(classification.intent),
                "phase": "skip_responder",
            }
        return {"result": result, "phase": "responding"}

    def _respond_node(self, state: ChatState) -> dict:
        classification, trace = state["classification"], state["trace"]
        result = state.get("result")
        tool = classification.function_to_call

        if result is not None:
            text = render_template(tool, result, classification.extracted_params)
            if text is not None:
                trace.add_step("template", "ok", function=tool.value if tool else None)
                return {
                    "text": text,
                    "suggestions": fallback_suggestions(classification.intent),
                    "phase": "done",
                }

        with trace.stage("respond", RESPONSE_GENERATION):
            text, suggestions, usage = respond(
                state["request"].messages,
                classification,
                result,
                self.llm,
                store=state["ctx"].store,
                model=state["model"],
            )
        trace.add_usage(RESPONSE_GENERATION, usage)
        return {"text": text, "suggestions": suggestions, "phase": "done"}

    # ── Conditional edges ────────────────────────────────────────────

    @staticmethod
    def route_after_classify(state: ChatState) -> str:
        classification = state["classification"]
        if classification.needs_clarification or classification.function_to_call is None:
            return "respond"
        return "dispatch"

    @staticmethod
    def route_after_dispatch(state: ChatState) -> str:
        return END if state.get("phase") == "skip_responder" else "respond"

    # ── Graph assembly ───────────────────────────────────────────────

    def _build_graph(self):
        graph = StateGraph(ChatState)
        graph.add_node("classify", self._classify_node)
        graph.add_node("dispatch", self._dispatch_node)
        graph.add_node("respond", self._respond_node)

        graph.set_entry_point("classify")
        graph.add_conditional_edges(
            "classify",
            self.route_after_classify,
            {"dispatch": "dispatch", "respond": "respond"},
        )
        graph.add_conditional_edges(
            "dispatch",
            self.route_after_dispatch,
            {"respond": "respond", END: END},
        )
        graph.add_edge("respond", END)
        return graph.compile()

    # ── Entry points ─────────────────────────────────────────────────

    def run(self, request: ChatRequest) -> ChatReply:
        """Answer one chat request.  Typed errors propagate to the caller."""
        mode = self.mode if request.include_store_data else "lean"
        model = request.model or DEFAULT_MODEL
        trace = TraceBuilder(mode, model)
        with trace.stage("load_store"):
            ctx = self.build_context(request, preload=request.include_store_data)

        final = self.graph.invoke(
            {"request": request, "ctx": ctx, "trace": trace, "model": model, "phase": "classifying", "result": None}
        )

        classification: Classification = final["classification"]
        result: FunctionResult | None = final.get("result")
        reply = ChatReply(
            text=final.get("text", ""),
            intent=classification.intent.value,
            function_called=classification.function_to_call.value if classification.function_to_call else None,
            confidence=classification.confidence,
            function_result=result,
            suggestions=final.get("suggestions", []),
            components=list(result.components) if result else [],
            debug=trace.finish(),
        )
        logger.info(
            "[%s] store=%s intent=%s function=%s total=%.0fms",
            mode, request.store_id, reply.intent, reply.function_called,
            reply.debug["durations_ms"]["total"],
        )
        self.submit_evaluation(request, reply, mode)
        return reply

    def run_direct_function(
        self,
        store_id: str,
        function_name: str,
        params: dict[str, Any] | None = None,
    ) -> ChatReply:
        """Run one whitelisted function without any model call."""
        tool = ToolName.parse(function_name)
        if tool not in TEMPLATE_TOOLS:
            raise ValidationError(
                f"Function {function_name!r} cannot be executed directly",
                errors=[f"functionName: must be one of {sorted(t.value for t in TEMPLATE_TOOLS)}"],
            )

        trace = TraceBuilder("direct", "none")
        request = ChatRequest(messages=[], store_id=store_id)
        with trace.stage("load_store"):
            ctx = self.build_context(request, preload=False)
        with trace.stage("dispatch", FUNCTION_EXECUTION, function=tool.value):
            result, call = execute_function(tool, params or {}, ctx)
        trace.add_function_call(call)

        text = render_template(tool, result, params or {})
        if text is None:
            text = result.message or result.error or ""
        return ChatReply(
            text=text,
            intent=Intent.FUNCTION_CALL.value,
            function_called=tool.value,
            confidence=100,
            function_result=result,
            components=list(result.components),
            debug=trace.finish(),
        )
