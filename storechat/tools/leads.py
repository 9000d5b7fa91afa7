"""Lead capture with a form generated from the store's Leads tab.

The Leads tab's header row defines the form.  When the required fields
(the first two form columns) are missing, the tool answers with
``awaiting_input`` and a ``LeadForm`` component instead of failing; the
UI posts the form back as ``submit_lead name="..." email="..."``.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import Any

from storechat.models import FunctionResult, make_component
from storechat.services.store_data import resolve_tab_name, tab_columns
from storechat.tools.context import ToolContext

logger = logging.getLogger(__name__)

_EXCLUDED_COLUMNS = {"date", "status", "timestamp", "created", "id"}
_REQUIRED_FIELD_COUNT = 2

_DOUBLE_QUOTED_RE = re.compile(r'(\w+)="([^"]*)"')
_SINGLE_QUOTED_RE = re.compile(r"(\w+)='([^']*)'")

# Alternative spellings accepted for common columns
_ALIASES: list[tuple[tuple[str, ...], tuple[str, ...]]] = [
    (("name",), ("name", "Name", "fullname", "full_name")),
    (("email",), ("email", "Email", "e_mail")),
    (("phone", "mobile"), ("phone", "Phone", "mobile", "Mobile", "tel")),
    (("message", "note"), ("message", "Message", "note", "Note", "comment")),
]


def parse_form_data(message: str) -> dict[str, str]:
    """Extract ``key="value"`` and ``key='value'`` pairs from *message*.

    Double-quoted values win over single-quoted ones for the same key.
    """
    result = {m.group(1): m.group(2) for m in _DOUBLE_QUOTED_RE.finditer(message)}
    for m in _SINGLE_QUOTED_RE.finditer(message):
        result.setdefault(m.group(1), m.group(2))
    return result


def field_type(column: str) -> str:
    col = column.lower()
    if "email" in col:
        return "email"
    if "phone" in col or "mobile" in col or "tel" in col:
        return "tel"
    if any(word in col for word in ("message", "note", "comment", "description")):
        return "textarea"
    return "text"


def placeholder(column: str) -> str:
    col = column.lower()
    if "name" in col:
        return "Your full name"
    if "email" in col:
        return "you@example.com"
    if "phone" in col:
        return "+1 555 555 5555"
    if "message" in col or "note" in col:
        return "How can we help you?"
    if "interest" in col:
        return "What are you interested in?"
    return f"Enter {col}"


def build_form_fields(columns: list[str]) -> list[dict[str, Any]]:
    form_columns = [c for c in columns if c.lower() not in _EXCLUDED_COLUMNS]
    return [
        {
            "name": col,
            "label": col,
            "type": field_type(col),
            "required": index < _REQUIRED_FIELD_COUNT,
            "placeholder": placeholder(col),
        }
        for index, col in enumerate(form_columns)
    ]


def lookup_value(params: dict[str, Any], column: str) -> str:
    """Find the value for *column* in *params*, trying common aliases."""
    value = params.get(column) or params.get(column.lower())
    if not value:
        col = column.lower()
        for markers, keys in _ALIASES:
            if any(marker in col for marker in markers):
                value = next((params[k] for k in keys if params.get(k)), None)
                if value:
                    break
    return str(value).strip() if value else ""


def submit_lead(params: dict[str, Any], ctx: ToolContext) -> FunctionResult:
    last_message = ctx.last_user_message()
    if "submit_lead" in last_message.lower():
        # Explicit params from the model win over the raw form payload
        params = {**parse_form_data(last_message), **params}

    leads_tab = resolve_tab_name("leads", ctx.store.detected_schema)
    if not leads_tab:
        return FunctionResult.fail(
            'Lead capture not available. Please ensure your sheet has a "Leads" tab.'
        )

    columns = tab_columns(ctx.store, leads_tab)
    fields = build_form_fields(columns)
    if not fields:
        return FunctionResult.fail(
            f'Lead capture not set up: the "{leads_tab}" tab has no columns. '
            "Add a header row (e.g. Name, Email) and reconnect your sheet."
        )
    missing = [f["name"] for f in fields if f["required"] and not lookup_value(params, f["name"])]

    if missing:
        defaults = {f["name"]: v for f in fields if (v := lookup_value(params, f["name"]))}
        form = make_component(
            "LeadForm",
            {"fields": fields, "defaultValues": defaults},
            f"lead-form-{ctx.store.id}",
        )
        return FunctionResult(
            success=True,
            awaiting_input=True,
            data={"missing_fields": missing, "fields": fields},
            message="Please provide your contact information so we can assist you better.",
            components=[form],
        )

    submitted_at = datetime.now(UTC).isoformat()
    row: dict[str, Any] = {}
    for col in columns:
        col_lower = col.lower()
        if col_lower in ("date", "timestamp"):
            row[col] = submitted_at
        elif col_lower == "status":
            row[col] = "new"
        else:
            row[col] = lookup_value(params, col)

    try:
        ctx.loader.append_row(ctx.store, leads_tab, row)
    except Exception:
        logger.exception("submit_lead: failed to append row to %s", leads_tab)
        return FunctionResult.fail(
            "Failed to save your information. Please try again or contact us directly."
        )

    return FunctionResult(
        success=True,
        data={
            "lead_id": submitted_at,
            "name": lookup_value(params, "name") or None,
            "lead": row,
        },
        message="Thank you! We've received your information and will get back to you soon.",
    )
