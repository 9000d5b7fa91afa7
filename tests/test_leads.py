"""Tests for lead capture."""

from __future__ import annotations

from storechat.models import ChatTurn
from storechat.tools.leads import build_form_fields, lookup_value, parse_form_data, submit_lead
from storechat.tools.registry import execute_function


class TestFormHelpers:
    def test_parse_form_data_prefers_double_quotes(self):
        message = """submit_lead name="Ana Lima" email='ana@example.com' name='ignored'"""
        assert parse_form_data(message) == {"name": "Ana Lima", "email": "ana@example.com"}

    def test_form_fields_skip_bookkeeping_columns(self):
        fields = build_form_fields(["Name", "Email", "Phone", "Message", "Date", "Status"])
        assert [f["name"] for f in fields] == ["Name", "Email", "Phone", "Message"]
        assert [f["required"] for f in fields] == [True, True, False, False]
        assert [f["type"] for f in fields] == ["text", "email", "tel", "textarea"]

    def test_lookup_value_uses_aliases(self):
        assert lookup_value({"fullname": "Ana"}, "Customer Name") == "Ana"
        assert lookup_value({"mobile": "555"}, "Phone") == "555"
        assert lookup_value({}, "Interest") == ""


class TestSubmitLead:
    def test_missing_required_fields_returns_form(self, tool_context):
        result = submit_lead({"name": "Ana"}, tool_context)

        assert result.success
        assert result.awaiting_input
        assert result.data["missing_fields"] == ["Email"]
        form = result.components[0]
        assert form["type"] == "LeadForm"
        assert form["props"]["defaultValues"] == {"Name": "Ana"}
        tool_context.loader.append_row.assert_not_called()

    def test_appends_row_with_bookkeeping(self, tool_context):
        result = submit_lead(
            {"name": "Ana", "email": "ana@example.com", "message": "Private lesson?"}, tool_context,
        )

        assert result.success
        assert not result.awaiting_input
        store, tab, row = tool_context.loader.append_row.call_args[0]
        assert tab == "Leads"
        assert row["Name"] == "Ana"
        assert row["Message"] == "Private lesson?"
        assert row["Phone"] == ""
        assert row["Status"] == "new"
        assert row["Date"] == result.data["lead_id"]
        assert result.data["name"] == "Ana"

    def test_form_submission_message_is_parsed(self, tool_context):
        tool_context.messages = [
            ChatTurn("user", 'submit_lead Name="Ana" Email="ana@example.com" Phone="555"'),
        ]
        result = submit_lead({}, tool_context)
        assert result.success and not result.awaiting_input
        row = tool_context.loader.append_row.call_args[0][2]
        assert row["Phone"] == "555"

    def test_no_leads_tab(self, tool_context):
        del tool_context.store.detected_schema["Leads"]
        result = submit_lead({"name": "Ana", "email": "a@b.co"}, tool_context)
        assert not result.success
        assert "Leads" in result.error

    def test_append_failure_is_reported(self, tool_context):
        tool_context.loader.append_row.side_effect = RuntimeError("quota exceeded")
        result = submit_lead({"name": "Ana", "email": "ana@example.com"}, tool_context)
        assert not result.success
        assert result.error.startswith("Failed to save your information")

    def test_leads_tab_without_columns_is_not_a_submission(self, tool_context):
        tool_context.store.detected_schema["Leads"] = {}

        result, _ = execute_function("submit_lead", {}, tool_context)

        assert not result.success
        assert result.error.startswith('Lead capture not set up: the "Leads" tab has no columns')
        tool_context.loader.append_row.assert_not_called()
