"""FastAPI route definitions for the storechat API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from storechat.api.schemas import (
    ChatRequest,
    ChatResponse,
    DirectRequest,
    HealthResponse,
    PrecacheRequest,
)
from storechat.errors import (
    BudgetExceeded,
    ExternalServiceError,
    MalformedModelOutput,
    ResourceUnavailable,
    ValidationError,
)
from storechat.models import ChatReply

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_state(request: Request, name: str):
    """Retrieve a component built during the FastAPI lifespan (see ``server.py``)."""
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=503,
            detail="The service is still starting up. Please try again in a moment.",
        )
    return value


def _to_http_error(exc: Exception, request_id: str) -> HTTPException:
    """Map an engine error onto an HTTP status.

    Unexpected errors get a generic detail; the traceback is logged only.
    """
    if isinstance(exc, ResourceUnavailable):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail={"message": str(exc), "errors": exc.errors})
    if isinstance(exc, BudgetExceeded):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, (ExternalServiceError, MalformedModelOutput)):
        logger.error("[%s] Upstream failure: %s", request_id, exc)
        return HTTPException(status_code=502, detail="An upstream service failed. Please try again.")
    logger.exception("[%s] Error processing request", request_id, exc_info=exc)
    return HTTPException(status_code=500, detail="An internal error occurred. Please try again.")


async def _call(http_request: Request, fn: Callable[..., Any], *args: Any) -> Any:
    """Run blocking engine code on a worker thread, translating errors.

    The engine talks to external services synchronously, so every call is
    offloaded with ``asyncio.to_thread`` to keep the event loop free.
    """
    request_id = getattr(http_request.state, "request_id", "?")
    try:
        return await asyncio.to_thread(fn, *args)
    except HTTPException:
        raise
    except Exception as exc:
        raise _to_http_error(exc, request_id) from exc


def _response(reply: ChatReply) -> ChatResponse:
    return ChatResponse(
        text=reply.text,
        intent=reply.intent,
        function_called=reply.function_called,
        confidence=reply.confidence,
        function_result=reply.function_result.to_dict() if reply.function_result else None,
        suggestions=reply.suggestions,
        components=reply.components,
        debug=reply.debug,
    )


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check(http_request: Request):
    """Health check endpoint."""
    loader = getattr(http_request.app.state, "loader", None)
    return HealthResponse(cache_strategy=loader.cache.name if loader else None)


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Classic pipeline: classify, dispatch, then template or responder.

    ``architecture="lean"`` runs the same pipeline without store data in
    the classifier prompt and without pre-warming the core tabs.
    """
    orchestrator = _get_state(http_request, "classic")
    reply = await _call(http_request, orchestrator.run, request.to_engine())
    return _response(reply)


@router.post("/chat/native", response_model=ChatResponse)
async def chat_native(request: ChatRequest, http_request: Request):
    """Native tool-calling loop."""
    orchestrator = _get_state(http_request, "native")
    reply = await _call(http_request, orchestrator.run, request.to_engine())
    return _response(reply)


@router.post("/direct", response_model=ChatResponse)
async def direct_function(request: DirectRequest, http_request: Request):
    """Run one templated function without any model call."""
    orchestrator = _get_state(http_request, "classic")
    reply = await _call(
        http_request,
        orchestrator.run_direct_function,
        request.store_id,
        request.function_name,
        request.params,
    )
    return _response(reply)


@router.post("/precache")
async def precache(request: PrecacheRequest, http_request: Request) -> dict[str, Any]:
    """Warm, clear or inspect a store's cached tabs."""
    loader = _get_state(http_request, "loader")
    if request.action == "stats":
        return await _call(http_request, loader.stats, request.store_id)
    if request.action == "clear":
        removed = await _call(http_request, loader.clear, request.store_id)
        return {"storeId": request.store_id, "cleared": True, "removed": removed}

    orchestrator = _get_state(http_request, "classic")

    def _warm() -> dict[str, Any]:
        return loader.precache(orchestrator.load_store(request.store_id))

    return await _call(http_request, _warm)
