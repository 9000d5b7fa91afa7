"""Tool registry: validation, dispatch and function schemas.

``execute_function`` is the only way a tool runs, whichever architecture
picked it.  Handlers never see unvalidated arguments, and whatever they
return is normalised with ``FunctionResult.from_raw`` before anyone else
looks at it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from langchain_core.utils.function_calling import convert_to_openai_tool

from storechat.models import FunctionResult, ToolCallTrace, ToolName
from storechat.services.metrics import metrics
from storechat.tools import booking, catalog, leads, recommendations
from storechat.tools.context import ToolContext
from storechat.tools.validators import ARG_MODELS, validate_params

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any], ToolContext], Any]

HANDLERS: dict[ToolName, Handler] = {
    ToolName.GET_STORE_INFO: catalog.get_store_info,
    ToolName.GET_SERVICES: catalog.get_services,
    ToolName.SEARCH_SERVICES: catalog.search_services,
    ToolName.GET_PRODUCTS: catalog.get_products,
    ToolName.SEARCH_PRODUCTS: catalog.search_products,
    ToolName.GET_MISC_DATA: catalog.get_misc_data,
    ToolName.SUBMIT_LEAD: leads.submit_lead,
    ToolName.CHECK_AVAILABILITY: booking.check_availability,
    ToolName.GET_BOOKING_SLOTS: booking.get_booking_slots,
    ToolName.CREATE_BOOKING: booking.create_booking,
    ToolName.GET_RECOMMENDATIONS: recommendations.get_recommendations,
}


def execute_function(
    name: str | ToolName | None,
    params: dict[str, Any] | None,
    ctx: ToolContext,
) -> tuple[FunctionResult, ToolCallTrace]:
    """Validate, run and normalise one tool call.

    Never raises for business failures: unknown tools, invalid arguments
    and handler exceptions all come back as ``success=False`` results.
    """
    tool = name if isinstance(name, ToolName) else ToolName.parse(name)
    label = tool.value if tool else str(name)
    arguments = dict(params or {})
    t0 = time.perf_counter()

    def _trace(result: FunctionResult) -> ToolCallTrace:
        return ToolCallTrace(
            name=label,
            arguments=arguments,
            duration_ms=round((time.perf_counter() - t0) * 1000, 1),
            success=result.success,
            error=result.error,
        )

    handler = HANDLERS.get(tool) if tool else None
    if handler is None:
        logger.warning("Unknown function requested: %r", name)
        result = FunctionResult.fail(f"Unknown function: {name}")
        return result, _trace(result)

    clean, errors = validate_params(tool, arguments)
    if errors:
        logger.info("Invalid parameters for %s: %s", label, errors)
        result = FunctionResult.fail(f"Invalid parameters: {', '.join(errors)}")
        return result, _trace(result)

    try:
        result = FunctionResult.from_raw(handler(clean, ctx))
    except Exception as exc:
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_failure("tools", label, type(exc).__name__, elapsed)
        logger.exception("Function %s failed", label)
        result = FunctionResult.fail(str(exc) or type(exc).__name__)
        return result, _trace(result)

    trace = _trace(result)
    metrics.record_success("tools", label, trace.duration_ms)
    logger.info("Function %s finished (success=%s, %.0fms)", label, result.success, trace.duration_ms)
    return result, trace


def tool_specs() -> list[dict[str, Any]]:
    """OpenAI-format function schemas for every registered tool."""
    specs = []
    for tool, model in ARG_MODELS.items():
        spec = convert_to_openai_tool(model)
        spec["function"]["name"] = tool.value
        specs.append(spec)
    return specs
