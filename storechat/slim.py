"""Shrink tool payloads before they are shown to a model.

Sheets carry many columns the responder never needs (internal ids, image
URLs, long descriptions).  Slimming keeps prompts small and cheap; UI
components still receive the full rows.
"""

from __future__ import annotations

from typing import Any

from storechat.models import FunctionResult, ToolName

DESCRIPTION_LIMIT = 100
STORE_DESCRIPTION_LIMIT = 200
MAX_HOURS = 7
MAX_PREVIEW_ITEMS = 5


def _truncate(value: Any, limit: int) -> str:
    return str(value or "")[:limit]


def _in_stock(product: dict[str, Any]) -> bool:
    try:
        return float(product.get("quantity") or 0) > 0
    except (TypeError, ValueError):
        return False


def slim_product(p: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": p.get("name"),
        "price": p.get("price"),
        "category": p.get("category"),
        "description": _truncate(p.get("description"), DESCRIPTION_LIMIT),
        "inStock": _in_stock(p),
    }


def slim_service(s: dict[str, Any]) -> dict[str, Any]:
    return {
        "serviceName": s.get("serviceName"),
        "price": s.get("price"),
        "duration": s.get("duration"),
        "category": s.get("category"),
        "description": _truncate(s.get("description"), DESCRIPTION_LIMIT),
    }


def _slim_catalog(data: dict[str, Any], key: str, slim_item) -> dict[str, Any]:
    return {**data, key: [slim_item(item) for item in data.get(key) or []]}


def _slim_store_info(data: dict[str, Any]) -> dict[str, Any]:
    info = (data.get("store_info") or [{}])[0] or {}
    services = data.get("services") or []
    products = data.get("products") or []
    slim: dict[str, Any] = {
        "store_name": data.get("store_name"),
        "info_type": data.get("info_type"),
        "storeDetails": {
            **{k: v for k, v in info.items() if k != "description"},
            "description": _truncate(info.get("description"), STORE_DESCRIPTION_LIMIT),
        } if info else None,
        "hours": [
            {
                "day": h.get("day"),
                "openTime": h.get("openTime"),
                "closeTime": h.get("closeTime"),
                "isOpen": h.get("isOpen"),
            }
            for h in (data.get("hours") or [])[:MAX_HOURS]
        ],
    }
    if services:
        slim["services"] = [
            {"name": s.get("serviceName"), "price": s.get("price"), "category": s.get("category")}
            for s in services[:MAX_PREVIEW_ITEMS]
        ]
        slim["servicesCount"] = len(services)
    if products:
        slim["products"] = [
            {"name": p.get("name"), "price": p.get("price"), "category": p.get("category")}
            for p in products[:MAX_PREVIEW_ITEMS]
        ]
        slim["productsCount"] = len(products)
    return slim


def _slim_booking_slots(result: FunctionResult, data: dict[str, Any]) -> dict[str, Any]:
    return {
        "success": result.success,
        "service": data.get("service"),
        "slotsCount": data.get("slotsCount", len(data.get("slots") or [])),
        "dateRange": data.get("dateRange"),
        "message": result.message,
    }


def _slim_recommendations(data: dict[str, Any]) -> dict[str, Any]:
    return {
        **{k: v for k, v in data.items() if k != "recommendations"},
        "recommendations": [
            {
                "name": r.get("_name") or r.get("serviceName") or r.get("name"),
                "price": r.get("price"),
                "category": r.get("category"),
                "matchReason": r.get("matchReason"),
            }
            for r in data.get("recommendations") or []
        ],
    }


def slim_data(tool: ToolName | None, result: FunctionResult) -> Any:
    """Reduced copy of ``result.data`` for *tool*; unknown shapes pass through."""
    data = result.data
    if not isinstance(data, dict):
        return data
    if tool in (ToolName.GET_PRODUCTS, ToolName.SEARCH_PRODUCTS):
        return _slim_catalog(data, "products", slim_product)
    if tool in (ToolName.GET_SERVICES, ToolName.SEARCH_SERVICES):
        return _slim_catalog(data, "services", slim_service)
    if tool is ToolName.GET_BOOKING_SLOTS:
        return _slim_booking_slots(result, data)
    if tool is ToolName.GET_RECOMMENDATIONS:
        return _slim_recommendations(data)
    if tool is ToolName.GET_STORE_INFO:
        return _slim_store_info(data)
    return data


def slim_result(tool: ToolName | None, result: FunctionResult) -> dict[str, Any]:
    """The ``{success, data, message, error}`` payload fed back to a model."""
    return {
        "success": result.success,
        "data": slim_data(tool, result),
        "message": result.message,
        "error": result.error,
    }
