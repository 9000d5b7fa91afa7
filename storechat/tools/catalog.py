"""Read-only catalog tools: store info, services, products, other tabs."""

from __future__ import annotations

import logging
from typing import Any

from storechat.models import FunctionResult, make_component
from storechat.services.store_data import TAB_ALIASES
from storechat.tools.context import ToolContext
from storechat.tools.matcher import semantic_match

logger = logging.getLogger(__name__)

_MISSING_TAB = (
    '{label} data not available. Please ensure your sheet has a tab named "{tab}" '
    "(or reconnect your sheet to detect tabs)."
)

_INFO_TABS = {
    "all": ("store_info", "hours", "services", "products"),
    "hours": ("store_info", "hours"),
    "services": ("store_info", "services"),
    "products": ("store_info", "products"),
}


def _filter_category(rows: list[dict[str, Any]], category: str | None) -> list[dict[str, Any]]:
    if not category:
        return rows
    needle = category.lower()
    return [r for r in rows if needle in str(r.get("category") or "").lower()]


def _normalize_hours(raw: Any) -> list[dict[str, Any]]:
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str) and raw:
        return [{"day": "Hours", "openTime": raw, "closeTime": "", "isOpen": "Yes"}]
    return []


def get_store_info(params: dict[str, Any], ctx: ToolContext) -> FunctionResult:
    info_type = params.get("info_type", "all")
    data: dict[str, Any] = {}
    for data_type in _INFO_TABS.get(info_type, ("store_info",)):
        try:
            rows = ctx.rows(data_type)
        except Exception as exc:
            logger.warning("get_store_info: failed to load %s: %s", data_type, exc)
            rows = None
        if rows is not None:
            data[data_type] = rows

    hours = data.get("hours") or []
    if not hours and data.get("store_info"):
        hours = _normalize_hours(data["store_info"][0].get("hours"))

    components = []
    if hours:
        components.append(make_component("HoursList", {"hours": hours}, f"hours-{ctx.store.id}"))

    return FunctionResult(
        success=True,
        data={"store_name": ctx.store.name or "Unknown", "info_type": info_type, **data},
        message="Here is the requested store information.",
        components=components,
    )


def _list_catalog(
    params: dict[str, Any],
    ctx: ToolContext,
    *,
    data_type: str,
    kind: str,
    label: str,
) -> FunctionResult:
    rows = ctx.rows(data_type)
    if rows is None:
        return FunctionResult.fail(
            _MISSING_TAB.format(label=label, tab=TAB_ALIASES[data_type][0]),
        )

    query = params.get("query")
    category = params.get("category")
    items = _filter_category(list(rows), category)
    if query:
        items = semantic_match(query, items, kind, ctx.llm)

    components = []
    if items:
        components.append(make_component(data_type, {data_type: items}, f"{data_type}-{ctx.store.id}"))

    return FunctionResult(
        success=True,
        data={
            data_type: items,
            "count": len(items),
            "query": query or None,
            "category": category or None,
        },
        message=f"Found {len(items)} {data_type}.",
        components=components,
    )


def get_services(params: dict[str, Any], ctx: ToolContext) -> FunctionResult:
    return _list_catalog(params, ctx, data_type="services", kind="service", label="Services")


def search_services(params: dict[str, Any], ctx: ToolContext) -> FunctionResult:
    return _list_catalog(params, ctx, data_type="services", kind="service", label="Services")


def get_products(params: dict[str, Any], ctx: ToolContext) -> FunctionResult:
    return _list_catalog(params, ctx, data_type="products", kind="product", label="Products")


def search_products(params: dict[str, Any], ctx: ToolContext) -> FunctionResult:
    return _list_catalog(params, ctx, data_type="products", kind="product", label="Products")


def get_misc_data(params: dict[str, Any], ctx: ToolContext) -> FunctionResult:
    tab_name = params["tab_name"]
    rows = ctx.loader.load_tab(ctx.store, tab_name, use_cache=True)
    if rows is None:
        available = ", ".join(ctx.store.detected_schema) or "unknown (reconnect sheet to detect tabs)"
        return FunctionResult.fail(f'Tab "{tab_name}" not found. Available tabs: {available}')

    query = params.get("query")
    if query:
        needle = query.lower()
        rows = [r for r in rows if any(needle in str(v).lower() for v in r.values())]

    actual = ctx.loader.actual_tab(ctx.store, tab_name) or tab_name
    return FunctionResult(
        success=True,
        data={"tab_name": actual, "data": rows, "count": len(rows), "query": query or None},
    )
