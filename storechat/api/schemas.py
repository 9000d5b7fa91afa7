"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from storechat.models import ChatRequest as EngineChatRequest
from storechat.models import ChatTurn


class Message(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str = Field(..., max_length=8000)


class CachedData(BaseModel):
    """Rows the caller already holds; non-empty lists skip the fetch."""

    services: list[dict[str, Any]] | None = None
    products: list[dict[str, Any]] | None = None
    hours: list[dict[str, Any]] | None = None


class ChatRequest(BaseModel):
    """Incoming chat turn from the frontend."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[Message] = Field(..., min_length=1)
    store_id: str = Field(..., alias="storeId", min_length=1, max_length=100)
    model: str | None = None
    reasoning_enabled: bool = Field(False, alias="reasoningEnabled")
    cached_data: CachedData | None = Field(None, alias="cachedData")
    architecture: Literal["classic", "lean"] = "classic"

    def to_engine(self) -> EngineChatRequest:
        return EngineChatRequest(
            messages=[ChatTurn(role=m.role, content=m.content) for m in self.messages],
            store_id=self.store_id,
            model=self.model,
            reasoning_enabled=self.reasoning_enabled,
            cached_data=self.cached_data.model_dump(exclude_none=True) if self.cached_data else None,
            include_store_data=self.architecture != "lean",
        )


class ChatResponse(BaseModel):
    text: str
    intent: str
    function_called: str | None = Field(None, serialization_alias="functionCalled")
    confidence: int | None = None
    function_result: dict[str, Any] | None = Field(None, serialization_alias="functionResult")
    suggestions: list[str] = Field(default_factory=list)
    components: list[dict[str, Any]] = Field(default_factory=list)
    debug: dict[str, Any] = Field(default_factory=dict)


class DirectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    store_id: str = Field(..., alias="storeId", min_length=1)
    function_name: str = Field(..., alias="functionName", min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)


class PrecacheRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    store_id: str = Field(..., alias="storeId", min_length=1)
    action: Literal["precache", "clear", "stats"] = "precache"


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "storechat"
    cache_strategy: str | None = None
