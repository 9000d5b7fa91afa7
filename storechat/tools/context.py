"""Per-request context handed to every tool handler."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from storechat.config import STORE_TIMEZONE
from storechat.models import ChatTurn, Store
from storechat.services.store_data import TabLoader

logger = logging.getLogger(__name__)


def default_calendar():
    from storechat.services.calendar_client import get_calendar_client

    return get_calendar_client()


@dataclass
class ToolContext:
    store: Store
    loader: TabLoader
    llm: Any = None
    model: str | None = None
    # Pre-warmed rows keyed by data type ("services", "products", "hours")
    store_data: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    messages: list[ChatTurn] = field(default_factory=list)
    timezone: str = STORE_TIMEZONE
    calendar_factory: Callable[[], Any] = default_calendar
    _calendar: Any = field(default=None, init=False, repr=False)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    @property
    def calendar(self):
        if self._calendar is None:
            self._calendar = self.calendar_factory()
        return self._calendar

    def rows(self, data_type: str) -> list[dict[str, Any]] | None:
        """Rows for *data_type*: pre-warmed data first, then the tab loader.

        ``None`` means the store has no such tab.
        """
        warm = self.store_data.get(data_type)
        if warm:
            return warm
        rows = self.loader.load_tab(self.store, data_type)
        if rows is not None:
            self.store_data[data_type] = rows
        return rows

    def last_user_message(self) -> str:
        for turn in reversed(self.messages):
            if turn.role == "user":
                return turn.content
        return ""
