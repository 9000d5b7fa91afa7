"""Shared test fixtures for the storechat test suite."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("OPENROUTER_API_KEY", "test-openrouter-key-123")
    os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
    os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key-456")
    os.environ.setdefault("STORE_TIMEZONE", "Asia/Hong_Kong")
    os.environ.setdefault("CACHE_STRATEGY", "memory")


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock ``httpx`` responses."""

    def _make(data, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        mock.content = b"" if data is None else b"{...}"
        return mock

    return _make


@pytest.fixture
def llm_reply():
    """Factory for ``LLMResponse`` objects with a text body."""
    from storechat.models import TokenUsage
    from storechat.services.llm_client import LLMResponse

    def _make(content: str | None = None, tool_calls=None, usage: TokenUsage | None = None):
        return LLMResponse(
            content=content,
            tool_calls=list(tool_calls or []),
            usage=usage or TokenUsage(input=100, output=20),
        )

    return _make


@pytest.fixture
def store():
    from storechat.models import Store

    return Store(
        id="42",
        name="Clay Corner",
        type="pottery studio",
        description="Hand-building and wheel classes for all levels.",
        detected_schema={
            "Services": {"columns": ["serviceID", "serviceName", "price", "duration", "capacity"]},
            "Products": {"columns": ["name", "price", "quantity"]},
            "Hours": {"columns": ["day", "openTime", "closeTime", "isOpen"]},
            "Leads": {"columns": ["Name", "Email", "Phone", "Message", "Date", "Status"]},
        },
        calendar_mappings={"cal-wheel@group": "svc-wheel"},
        invite_calendar_id="invites@group",
    )


@pytest.fixture
def services():
    return [
        {
            "serviceID": "svc-wheel",
            "serviceName": "Wheel Throwing Basics",
            "price": "45",
            "duration": "90",
            "capacity": "8",
            "category": "Classes",
            "tags": "beginner, wheel",
            "description": "An intro class for first-timers.",
        },
        {
            "serviceID": "svc-glaze",
            "serviceName": "Glazing Workshop",
            "price": "60",
            "duration": "120",
            "capacity": "10",
            "category": "Workshops",
            "tags": "glaze, advanced",
            "description": "Advanced glazing techniques.",
        },
    ]


@pytest.fixture
def products():
    return [
        {"name": "Stoneware Clay 10kg", "price": "25", "quantity": "12", "category": "Supplies"},
        {"name": "Glaze Starter Kit", "price": "40", "quantity": "0", "category": "Supplies"},
    ]


@pytest.fixture
def calendar():
    cal = MagicMock()
    cal.list_events.return_value = []
    cal.count_bookings.return_value = 0
    return cal


@pytest.fixture
def tool_context(store, services, products, calendar):
    """A ToolContext with warm services/products and a mock loader and calendar."""
    from storechat.tools.context import ToolContext

    loader = MagicMock()
    loader.load_tab.return_value = None
    return ToolContext(
        store=store,
        loader=loader,
        llm=None,
        store_data={"services": services, "products": products, "hours": []},
        timezone="Asia/Hong_Kong",
        calendar_factory=lambda: calendar,
    )
