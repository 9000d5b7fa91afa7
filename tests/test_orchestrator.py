"""Tests for the classic classify -> dispatch -> respond graph."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest

from storechat.errors import ClassificationFailed, ExternalServiceError, ValidationError
from storechat.evaluator import EvaluationJob
from storechat.models import ChatRequest, ChatTurn, FunctionResult, ToolName
from storechat.orchestrator import ClassicOrchestrator
from storechat.tools.registry import HANDLERS


def _classification(function, params=None, **extra):
    return json.dumps(
        {
            "intent": extra.pop("intent", "SERVICE_INQUIRY"),
            "confidence": 92,
            "function_to_call": function,
            "extracted_params": params or {},
            **extra,
        }
    )


def _request(text="Do you have any classes?", **kwargs):
    return ChatRequest(messages=[ChatTurn("user", text)], store_id="42", **kwargs)


@pytest.fixture
def db(store):
    mock = MagicMock()
    mock.get_store.return_value = store
    return mock


@pytest.fixture
def loader(services, products):
    mock = MagicMock()
    mock.load_store_data.return_value = {"services": services, "products": products, "hours": []}
    mock.load_tab.return_value = None
    return mock


@pytest.fixture
def llm():
    return MagicMock()


@pytest.fixture
def orchestrator(loader, db, llm, calendar):
    return ClassicOrchestrator(loader, db=db, llm=llm, calendar_factory=lambda: calendar)


class TestTemplatePath:
    def test_whitelisted_tool_skips_the_responder(self, orchestrator, llm, llm_reply):
        llm.complete.return_value = llm_reply(_classification("get_services", {"category": "Classes"}))

        reply = orchestrator.run(_request())

        assert reply.text == 'Here is 1 service matching "Classes":'
        assert reply.intent == "SERVICE_INQUIRY"
        assert reply.function_called == "get_services"
        assert reply.confidence == 92
        assert reply.function_result.data["count"] == 1
        assert reply.components[0]["type"] == "services"
        assert reply.suggestions
        assert llm.complete.call_count == 1

    def test_trace_covers_every_stage(self, orchestrator, llm, llm_reply):
        llm.complete.return_value = llm_reply(_classification("get_services"))

        debug = orchestrator.run(_request()).debug

        assert debug["mode"] == "classic"
        assert debug["llm_calls"] == 1
        assert [s["name"] for s in debug["steps"]] == ["load_store", "classify", "dispatch", "template"]
        assert debug["function_calls"][0]["name"] == "get_services"
        assert debug["tokens"]["tool_selection"]["input"] == 100
        assert debug["tokens"]["response_generation"]["input"] == 0


class TestResponderPath:
    def test_untemplated_tool_uses_the_responder(self, orchestrator, loader, llm, llm_reply):
        loader.load_tab.return_value = [{"question": "Parking?", "answer": "Free after 6pm"}]
        loader.actual_tab.return_value = "FAQ"
        llm.complete.side_effect = [
            llm_reply(_classification("get_misc_data", {"tab_name": "FAQ"}, intent="INFO_REQUEST")),
            llm_reply(json.dumps({"response": "Parking is free after 6pm.", "suggestions": ["Hours?"]})),
        ]

        reply = orchestrator.run(_request("Is there parking?"))

        assert reply.text == "Parking is free after 6pm."
        assert reply.suggestions == ["Hours?"]
        assert reply.function_called == "get_misc_data"
        assert reply.debug["llm_calls"] == 2
        responder_prompt = llm.complete.call_args_list[1][0][0][0]["content"]
        assert "Free after 6pm" in responder_prompt

    def test_no_tool_goes_straight_to_the_responder(self, orchestrator, llm, llm_reply):
        llm.complete.side_effect = [
            llm_reply(_classification(None, intent="GREETING")),
            llm_reply(json.dumps({"response": "Hi! How can I help?", "suggestions": []})),
        ]

        reply = orchestrator.run(_request("hello"))

        assert reply.text == "Hi! How can I help?"
        assert reply.function_called is None
        assert reply.function_result is None
        assert reply.debug["function_calls"] == []

    def test_clarification_does_not_dispatch(self, orchestrator, llm, llm_reply):
        llm.complete.side_effect = [
            llm_reply(
                _classification(
                    "check_availability",
                    {"service_name": "Wheel"},
                    intent="BOOKING_REQUEST",
                    needs_clarification=True,
                    clarification_question="Which date?",
                )
            ),
            llm_reply(json.dumps({"response": "Which date works for you?"})),
        ]

        reply = orchestrator.run(_request("Can I book the wheel class?"))

        assert reply.text == "Which date works for you?"
        assert reply.function_result is None


class TestSkipResponder:
    def test_skip_responder_ends_after_dispatch(self, orchestrator, llm, llm_reply):
        handler = MagicMock(return_value=FunctionResult(success=True, message="Pick a time below.", skip_responder=True))
        llm.complete.return_value = llm_reply(
            _classification("get_booking_slots", {"service_name": "Wheel"}, intent="BOOKING_REQUEST")
        )

        with patch.dict(HANDLERS, {ToolName.GET_BOOKING_SLOTS: handler}):
            reply = orchestrator.run(_request("When can I come?"))

        assert reply.text == "Pick a time below."
        assert llm.complete.call_count == 1
        assert "template" not in [s["name"] for s in reply.debug["steps"]]


class TestLeanMode:
    def test_lean_mode_skips_preload_and_summary(self, orchestrator, loader, llm, llm_reply):
        llm.complete.return_value = llm_reply(_classification("get_services"))

        reply = orchestrator.run(_request(include_store_data=False))

        loader.load_store_data.assert_not_called()
        assert reply.debug["mode"] == "lean"
        prompt = llm.complete.call_args[0][0][0]["content"]
        assert "Wheel Throwing Basics" not in prompt

    def test_caller_rows_still_used_in_lean_mode(self, orchestrator, loader, llm, llm_reply, services):
        llm.complete.return_value = llm_reply(_classification("get_services"))

        reply = orchestrator.run(_request(include_store_data=False, cached_data={"services": services[:1]}))

        assert reply.function_result.data["count"] == 1
        loader.load_tab.assert_not_called()


class TestFailures:
    def test_classifier_error_propagates(self, orchestrator, llm):
        llm.complete.side_effect = ExternalServiceError("timeout", service="openrouter")
        with pytest.raises(ClassificationFailed):
            orchestrator.run(_request())

    def test_unknown_store_propagates(self, orchestrator, db):
        from storechat.errors import ResourceUnavailable

        db.get_store.side_effect = ResourceUnavailable("Store 42 not found")
        with pytest.raises(ResourceUnavailable):
            orchestrator.run(_request())


class TestDirectFunction:
    def test_runs_without_any_model_call(self, orchestrator, llm, loader, services):
        loader.load_tab.return_value = services

        reply = orchestrator.run_direct_function("42", "get_services", {"category": "Workshops"})

        assert reply.text == 'Here is 1 service matching "Workshops":'
        assert reply.intent == "FUNCTION_CALL"
        assert reply.confidence == 100
        assert reply.debug["mode"] == "direct"
        llm.complete.assert_not_called()

    def test_non_whitelisted_function_is_rejected(self, orchestrator):
        with pytest.raises(ValidationError) as exc_info:
            orchestrator.run_direct_function("42", "search_products", {"query": "clay"})
        assert "cannot be executed directly" in str(exc_info.value)


class TestEvaluationHandOff:
    def test_reply_is_queued_for_scoring(self, loader, db, llm, llm_reply, calendar):
        evaluator = MagicMock()
        orchestrator = ClassicOrchestrator(
            loader, db=db, llm=llm, evaluator=evaluator, calendar_factory=lambda: calendar,
        )
        llm.complete.return_value = llm_reply(_classification("get_services"))

        reply = orchestrator.run(_request("What classes do you run?"))

        job = evaluator.submit.call_args[0][0]
        assert isinstance(job, EvaluationJob)
        assert job.store_id == "42"
        assert job.mode == "classic"
        assert job.user_message == "What classes do you run?"
        assert job.reply == reply.text
        assert job.function_called == "get_services"


class TestSearchEndToEnd:
    def test_beginner_pottery_search_is_ranked_then_answered_in_prose(self, orchestrator, loader, llm, llm_reply):
        loader.load_store_data.return_value = {
            "services": [
                {"serviceName": "Advanced Glazing", "category": "Workshops", "tags": "glaze, advanced"},
                {"serviceName": "Pottery Basics", "category": "Classes", "tags": "beginner, pottery"},
            ],
            "products": [],
            "hours": [],
        }
        llm.complete.side_effect = [
            llm_reply(_classification("search_services", {"query": "beginner pottery"})),
            llm_reply('{"scores": [15, 95]}'),
            llm_reply(json.dumps({"response": "Yes! Pottery Basics is perfect for beginners."})),
        ]

        reply = orchestrator.run(_request("do you have pottery classes for beginners"))

        assert reply.function_called == "search_services"
        ranked = reply.function_result.data["services"]
        assert ranked[0]["serviceName"] == "Pottery Basics"
        assert ranked[0]["_score"] > ranked[1]["_score"]
        assert "Pottery Basics" in reply.text
        assert [s["name"] for s in reply.debug["steps"]] == ["load_store", "classify", "dispatch", "respond"]
        responder_prompt = llm.complete.call_args_list[2][0][0][0]["content"]
        assert "Pottery Basics" in responder_prompt
