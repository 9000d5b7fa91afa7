"""FastAPI server for the storechat orchestration engine.

Run with:
    uvicorn storechat.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from storechat.api.routes import router
from storechat.config import CORS_ORIGINS, QA_EVALUATION_ENABLED, SERVER_HOST, SERVER_PORT
from storechat.evaluator import EvaluationWorker
from storechat.native import NativeOrchestrator
from storechat.orchestrator import ClassicOrchestrator
from storechat.services.cache import build_cache
from storechat.services.llm_client import get_llm_client
from storechat.services.metrics import metrics
from storechat.services.store_data import TabLoader

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the cache strategy, tab loader and both orchestrators once.

    The cache is the only state shared across requests; everything else
    in app state is stateless apart from its HTTP connection pools.
    """
    cache = build_cache()
    loader = TabLoader(cache)
    llm = get_llm_client()

    evaluator = None
    if QA_EVALUATION_ENABLED:
        evaluator = EvaluationWorker(llm)
        evaluator.start()

    application.state.loader = loader
    application.state.evaluator = evaluator
    application.state.classic = ClassicOrchestrator(loader, llm=llm, evaluator=evaluator)
    application.state.native = NativeOrchestrator(loader, llm=llm, evaluator=evaluator)
    logger.info("storechat ready (cache=%s, qa=%s)", cache.name, bool(evaluator))
    yield
    if evaluator is not None:
        evaluator.stop()
    metrics.close()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="storechat",
    description=(
        "Conversational orchestration for small stores: services, products, "
        "hours, bookings, leads and recommendations from a spreadsheet."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS (needed for the chat widget) ───────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a unique request ID (``X-Request-ID``) for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "storechat",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting storechat API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "storechat.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
