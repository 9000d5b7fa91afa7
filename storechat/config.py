"""Centralized configuration for the storechat orchestration engine.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/storechat/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/storechat/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /storechat/{name} (AWS)."
    )


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes")


# ── Completion service (OpenRouter) ─────────────────────────────────
OPENROUTER_API_KEY: str = _require_env("OPENROUTER_API_KEY")
OPENROUTER_BASE_URL: str = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
OPENROUTER_REFERER: str = os.getenv("OPENROUTER_REFERER", "https://storechat.app")
OPENROUTER_TITLE: str = os.getenv("OPENROUTER_TITLE", "storechat")
DEFAULT_MODEL: str = os.getenv("DEFAULT_MODEL", "x-ai/grok-4.1-fast")

# Classifier call
CLASSIFIER_MAX_TOKENS = 200
CLASSIFIER_TEMPERATURE = 0.1
CLASSIFIER_TIMEOUT_SECONDS = 30.0

# Responder call
RESPONDER_MAX_TOKENS = 400
RESPONDER_TEMPERATURE = 0.5

# Native tool-calling loop
NATIVE_MAX_TOKENS = 1000
NATIVE_TEMPERATURE = 0.3
NATIVE_MAX_ITERATIONS: int = int(os.getenv("NATIVE_MAX_ITERATIONS", "5"))

# Semantic matcher scoring call
MATCHER_MODEL: str = os.getenv("MATCHER_MODEL", "anthropic/claude-3.5-haiku")
MATCHER_MAX_TOKENS = 500
MATCHER_TEMPERATURE = 0.3

# History window shared by classifier, responder and native loop
MAX_CONTEXT_MESSAGES = 6

# ── Store database (PostgREST) ──────────────────────────────────────
SUPABASE_URL: str = _require_env("SUPABASE_URL").rstrip("/")
SUPABASE_SERVICE_KEY: str = _require_env("SUPABASE_SERVICE_KEY")

# ── Tab service (sheet adapter) ─────────────────────────────────────
SHEETS_SERVICE_URL: str = os.getenv(
    "SHEETS_SERVICE_URL", f"{SUPABASE_URL}/functions/v1/google-sheet",
)

# ── Scheduling service (Google Calendar v3) ─────────────────────────
GOOGLE_CALENDAR_BASE_URL: str = "https://www.googleapis.com/calendar/v3"
GOOGLE_CALENDAR_TOKEN: str | None = os.getenv("GOOGLE_CALENDAR_TOKEN")
STORE_TIMEZONE: str = os.getenv("STORE_TIMEZONE", "Asia/Hong_Kong")

# ── Cache ───────────────────────────────────────────────────────────
# One of: database | memory | caller
CACHE_STRATEGY: str = os.getenv("CACHE_STRATEGY", "database").lower()
CACHE_TTL_SECONDS: int = int(os.getenv("CACHE_TTL_SECONDS", "3600"))

# ── Quality evaluation (background) ─────────────────────────────────
QA_EVALUATION_ENABLED: bool = _env_bool("QA_EVALUATION_ENABLED")
QA_MODEL: str = os.getenv("QA_MODEL", DEFAULT_MODEL)

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
