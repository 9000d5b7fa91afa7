"""Tests for the tool registry."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from storechat.models import FunctionResult, ToolName
from storechat.tools.registry import HANDLERS, execute_function, tool_specs


class TestExecuteFunction:
    def test_runs_handler_with_clean_params(self, tool_context):
        result, trace = execute_function("get_services", {"category": "Classes", "query": None}, tool_context)
        assert result.success
        assert result.data["count"] == 1
        assert trace.name == "get_services"
        assert trace.success is True
        assert trace.duration_ms >= 0

    def test_unknown_function(self, tool_context):
        result, trace = execute_function("teleport", {}, tool_context)
        assert not result.success
        assert result.error == "Unknown function: teleport"
        assert trace.success is False

    def test_invalid_params_never_reach_the_handler(self, tool_context):
        handler = MagicMock()
        with patch.dict(HANDLERS, {ToolName.CHECK_AVAILABILITY: handler}):
            result, _ = execute_function(
                ToolName.CHECK_AVAILABILITY, {"service_name": "Wheel"}, tool_context,
            )
        assert not result.success
        assert result.error.startswith("Invalid parameters: date: Field required")
        handler.assert_not_called()

    def test_handler_exception_becomes_failure(self, tool_context):
        handler = MagicMock(side_effect=RuntimeError("sheet offline"))
        with patch.dict(HANDLERS, {ToolName.GET_PRODUCTS: handler}):
            result, trace = execute_function("get_products", {}, tool_context)
        assert not result.success
        assert result.error == "sheet offline"
        assert trace.error == "sheet offline"

    def test_dict_results_are_normalised(self, tool_context):
        handler = MagicMock(return_value={"success": True, "slots": [1], "skip_responder": True})
        with patch.dict(HANDLERS, {ToolName.GET_BOOKING_SLOTS: handler}):
            result, _ = execute_function("get_booking_slots", {"service_name": "Wheel"}, tool_context)
        assert isinstance(result, FunctionResult)
        assert result.data == {"slots": [1]}
        assert result.skip_responder


class TestToolSpecs:
    def test_one_spec_per_tool(self):
        specs = tool_specs()
        names = {s["function"]["name"] for s in specs}
        assert names == {t.value for t in ToolName if t is not ToolName.UNKNOWN}
        assert all(s["type"] == "function" for s in specs)

    def test_spec_carries_schema_and_description(self):
        spec = next(s for s in tool_specs() if s["function"]["name"] == "create_booking")
        assert spec["function"]["description"].startswith("Book a service")
        params = spec["function"]["parameters"]
        assert "customer_email" in params["required"]
        assert "customer_phone" not in params["required"]
