"""Tests for the native tool-calling loop."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest

from storechat.errors import BudgetExceeded
from storechat.models import ChatRequest, ChatTurn, FunctionResult, ToolName
from storechat.native import NativeOrchestrator
from storechat.services.llm_client import ToolCall
from storechat.tools.registry import HANDLERS


def _call(name, arguments=None, call_id="call_1"):
    arguments = arguments or {}
    return ToolCall(id=call_id, name=name, arguments=arguments, raw_arguments=json.dumps(arguments))


def _request(text="What products do you sell?"):
    return ChatRequest(messages=[ChatTurn("user", text)], store_id="42")


@pytest.fixture
def llm():
    return MagicMock()


@pytest.fixture
def orchestrator(store, services, products, llm, calendar):
    db = MagicMock()
    db.get_store.return_value = store
    loader = MagicMock()
    loader.load_store_data.return_value = {"services": services, "products": products, "hours": []}
    return NativeOrchestrator(loader, db=db, llm=llm, calendar_factory=lambda: calendar)


class TestNativeLoop:
    def test_tool_call_then_final_text(self, orchestrator, llm, llm_reply):
        llm.complete.side_effect = [
            llm_reply(tool_calls=[_call("get_products")]),
            llm_reply("We sell clay and glaze kits."),
        ]

        reply = orchestrator.run(_request())

        assert reply.text == "We sell clay and glaze kits."
        assert reply.intent == "FUNCTION_CALL"
        assert reply.function_called == "get_products"
        assert reply.confidence == 90
        assert reply.components[0]["type"] == "products"

        debug = reply.debug
        assert debug["mode"] == "native"
        assert debug["llm_calls"] == 2
        assert debug["tokens"]["tool_selection"]["input"] == 100
        assert debug["tokens"]["response_generation"]["input"] == 100

    def test_tool_result_is_fed_back_slimmed(self, orchestrator, llm, llm_reply):
        llm.complete.side_effect = [
            llm_reply(tool_calls=[_call("get_products")]),
            llm_reply("Done."),
        ]

        orchestrator.run(_request())

        messages = llm.complete.call_args_list[1][0][0]
        assistant, tool = messages[-2], messages[-1]
        assert assistant["role"] == "assistant"
        assert assistant["tool_calls"][0]["function"]["name"] == "get_products"
        assert tool["role"] == "tool"
        assert tool["tool_call_id"] == "call_1"
        payload = json.loads(tool["content"])
        assert payload["success"] is True
        assert payload["data"]["products"][1] == {
            "name": "Glaze Starter Kit",
            "price": "40",
            "category": "Supplies",
            "description": "",
            "inStock": False,
        }

    def test_every_call_offers_all_tools(self, orchestrator, llm, llm_reply):
        llm.complete.return_value = llm_reply("Hello! How can I help?")

        reply = orchestrator.run(_request("hi"))

        kwargs = llm.complete.call_args[1]
        assert kwargs["tool_choice"] == "auto"
        assert len(kwargs["tools"]) == len(HANDLERS)
        assert reply.intent == "GREETING"
        assert reply.function_called is None
        system = llm.complete.call_args[0][0][0]
        assert system["role"] == "system"
        assert "Clay Corner" in system["content"]

    def test_only_the_first_tool_call_runs(self, orchestrator, llm, llm_reply):
        llm.complete.side_effect = [
            llm_reply(tool_calls=[_call("get_products"), _call("get_services", call_id="call_2")]),
            llm_reply("Here you go."),
        ]

        reply = orchestrator.run(_request())

        assert [c["name"] for c in reply.debug["function_calls"]] == ["get_products"]

    def test_skip_responder_ends_the_loop(self, orchestrator, llm, llm_reply):
        handler = MagicMock(return_value=FunctionResult(success=True, message="Choose a slot:", skip_responder=True))
        llm.complete.return_value = llm_reply(tool_calls=[_call("get_booking_slots", {"service_name": "Wheel"})])

        with patch.dict(HANDLERS, {ToolName.GET_BOOKING_SLOTS: handler}):
            reply = orchestrator.run(_request("When is the wheel class?"))

        assert reply.text == "Choose a slot:"
        assert llm.complete.call_count == 1

    def test_awaiting_input_with_message_ends_the_loop(self, orchestrator, llm, llm_reply):
        llm.complete.return_value = llm_reply(tool_calls=[_call("submit_lead")])

        reply = orchestrator.run(_request("I'd like someone to contact me"))

        assert reply.function_result.awaiting_input
        assert reply.text == reply.function_result.message
        assert llm.complete.call_count == 1


class TestBudget:
    def test_iteration_cap_raises(self, store, services, llm, llm_reply, calendar):
        db = MagicMock()
        db.get_store.return_value = store
        loader = MagicMock()
        loader.load_store_data.return_value = {"services": services}
        orchestrator = NativeOrchestrator(
            loader, db=db, llm=llm, calendar_factory=lambda: calendar, max_iterations=2,
        )
        llm.complete.return_value = llm_reply(tool_calls=[_call("get_services")])

        with pytest.raises(BudgetExceeded) as exc_info:
            orchestrator.run(_request())

        assert exc_info.value.iterations == 2
        assert llm.complete.call_count == 2
