"""Store-data cache strategies.

Three interchangeable implementations of :class:`CacheStore`:

``DatabaseCache``
    Shared ``cache`` table behind PostgREST.  Survives across requests and
    processes.  Expiry is a query-time filter (``expiresAt > now``); stale
    rows stay in the table until overwritten or cleared.
``MemoryCache``
    Per-process LRU with TTL and a byte-size ceiling.  Useful for local
    runs and as a baseline when comparing strategies.
``CallerSuppliedCache``
    Legacy mode: the caller ships the data with the request, the backend
    never looks anything up or stores anything.

Exactly one strategy is active per process; :func:`build_cache` picks it
from ``CACHE_STRATEGY`` at startup.  Cache failures are never fatal: they
are logged and treated as a miss.

Key format
──────────
``store:{storeId}:{dataType}``, e.g. ``store:42:services``.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol, runtime_checkable

from storechat.config import CACHE_STRATEGY, CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)

# Default ceiling for the in-process cache: 20 MB
DEFAULT_MAX_BYTES = 20 * 1024 * 1024

CACHE_TABLE = "cache"


def cache_key(store_id: str, data_type: str) -> str:
    return f"store:{store_id}:{data_type}"


def store_prefix(store_id: str) -> str:
    return f"store:{store_id}:"


def _data_type(key: str) -> str:
    return key.split(":", 2)[2] if key.count(":") >= 2 else key


@dataclass
class CacheEntry:
    key: str
    payload: Any
    cached_at: float
    expires_at: float

    def is_live(self, now: float) -> bool:
        return self.expires_at > now


@runtime_checkable
class CacheStore(Protocol):
    """Interface every cache strategy satisfies."""

    name: str

    def get(self, key: str) -> Any | None:
        """Return the payload for *key*, or ``None`` if absent or expired."""
        ...

    def set(self, key: str, value: Any, ttl_seconds: int = CACHE_TTL_SECONDS) -> None:
        """Store *value* under *key* for *ttl_seconds*."""
        ...

    def clear_store(self, store_id: str) -> int:
        """Drop every entry of *store_id*.  Returns the count removed, if known."""
        ...

    def stats(self, store_id: str) -> dict[str, Any]:
        """Return ``{dataType: {"cached", "age", "expiresAt"}}`` for live entries."""
        ...


# ── In-process strategy ─────────────────────────────────────────────


class MemoryCache:
    """Thread-safe LRU cache with per-entry TTL and a byte-size ceiling."""

    name = "memory"

    def __init__(
        self,
        max_bytes: int = DEFAULT_MAX_BYTES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_bytes = max_bytes
        self._current_bytes = 0
        self._clock = clock
        # key → (entry, estimated_size_bytes)
        self._store: OrderedDict[str, tuple[CacheEntry, int]] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def _estimate_bytes(value: Any) -> int:
        try:
            return len(json.dumps(value, default=str).encode("utf-8"))
        except (TypeError, ValueError, OverflowError):
            return len(str(value).encode("utf-8"))

    def get(self, key: str) -> Any | None:
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return None
            entry, _ = item
            if not entry.is_live(self._clock()):
                return None
            self._store.move_to_end(key)
            return entry.payload

    def set(self, key: str, value: Any, ttl_seconds: int = CACHE_TTL_SECONDS) -> None:
        size = self._estimate_bytes(value)
        if size > self._max_bytes:
            logger.debug(
                "Cache: skipping key %s (size %d > max %d)", key, size, self._max_bytes,
            )
            return

        now = self._clock()
        entry = CacheEntry(key, value, cached_at=now, expires_at=now + ttl_seconds)
        with self._lock:
            if key in self._store:
                _, old_size = self._store.pop(key)
                self._current_bytes -= old_size

            while self._current_bytes + size > self._max_bytes and self._store:
                evicted_key, (_, evicted_size) = self._store.popitem(last=False)
                self._current_bytes -= evicted_size
                logger.debug("Cache: evicted %s (%d bytes)", evicted_key, evicted_size)

            self._store[key] = (entry, size)
            self._current_bytes += size

    def clear_store(self, store_id: str) -> int:
        prefix = store_prefix(store_id)
        with self._lock:
            keys = [k for k in self._store if k.startswith(prefix)]
            for key in keys:
                _, size = self._store.pop(key)
                self._current_bytes -= size
            return len(keys)

    def stats(self, store_id: str) -> dict[str, Any]:
        prefix = store_prefix(store_id)
        now = self._clock()
        out: dict[str, Any] = {}
        with self._lock:
            for key, (entry, _) in self._store.items():
                if key.startswith(prefix) and entry.is_live(now):
                    out[_data_type(key)] = {
                        "cached": True,
                        "age": round(now - entry.cached_at),
                        "expiresAt": datetime.fromtimestamp(entry.expires_at, UTC).isoformat(),
                    }
        return out

    @property
    def current_bytes(self) -> int:
        return self._current_bytes

    @property
    def entry_count(self) -> int:
        """Physically stored entries, expired ones included."""
        return len(self._store)


# ── Shared database strategy ────────────────────────────────────────


class DatabaseCache:
    """Cache rows in the ``cache`` table of the store database."""

    name = "database"

    def __init__(self, db=None, clock: Callable[[], datetime] | None = None) -> None:
        self._db = db
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def db(self):
        if self._db is None:
            from storechat.services.database import get_database

            self._db = get_database()
        return self._db

    def get(self, key: str) -> Any | None:
        now = self._clock().isoformat()
        try:
            rows = self.db.select(
                CACHE_TABLE,
                {"key": f"eq.{key}", "expiresAt": f"gt.{now}"},
                columns="value",
                limit=1,
            )
        except Exception as exc:
            logger.warning("Cache read failed for %s, treating as miss: %s", key, exc)
            return None
        if not rows:
            logger.debug("[DatabaseCache] MISS: %s", key)
            return None
        logger.debug("[DatabaseCache] HIT: %s", key)
        return rows[0].get("value")

    def set(self, key: str, value: Any, ttl_seconds: int = CACHE_TTL_SECONDS) -> None:
        now = self._clock()
        row = {
            "key": key,
            "value": value,
            "cachedAt": now.isoformat(),
            "expiresAt": (now + timedelta(seconds=ttl_seconds)).isoformat(),
        }
        try:
            self.db.upsert(CACHE_TABLE, [row], on_conflict="key")
        except Exception as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)

    def clear_store(self, store_id: str) -> int:
        try:
            self.db.delete(CACHE_TABLE, {"key": f"like.{store_prefix(store_id)}*"})
        except Exception as exc:
            logger.warning("Cache clear failed for store %s: %s", store_id, exc)
            return 0
        return -1  # PostgREST return=minimal does not report a count

    def stats(self, store_id: str) -> dict[str, Any]:
        now = self._clock()
        try:
            rows = self.db.select(
                CACHE_TABLE,
                {
                    "key": f"like.{store_prefix(store_id)}*",
                    "expiresAt": f"gt.{now.isoformat()}",
                },
                columns="key,cachedAt,expiresAt",
            )
        except Exception as exc:
            logger.warning("Cache stats failed for store %s: %s", store_id, exc)
            return {}
        out: dict[str, Any] = {}
        for row in rows:
            cached_at = datetime.fromisoformat(str(row["cachedAt"]).replace("Z", "+00:00"))
            out[_data_type(row["key"])] = {
                "cached": True,
                "age": round((now - cached_at).total_seconds()),
                "expiresAt": row["expiresAt"],
            }
        return out


# ── Legacy caller-supplied strategy ─────────────────────────────────


class CallerSuppliedCache:
    """No backend lookups: the request's ``cachedData`` is the only source."""

    name = "caller"

    def get(self, key: str) -> Any | None:
        return None

    def set(self, key: str, value: Any, ttl_seconds: int = CACHE_TTL_SECONDS) -> None:
        return None

    def clear_store(self, store_id: str) -> int:
        return 0

    def stats(self, store_id: str) -> dict[str, Any]:
        return {}


# ── Strategy selection ──────────────────────────────────────────────

_STRATEGIES: dict[str, Callable[[], CacheStore]] = {
    "database": DatabaseCache,
    "memory": MemoryCache,
    "caller": CallerSuppliedCache,
    "legacy": CallerSuppliedCache,
}


def build_cache(strategy: str | None = None) -> CacheStore:
    """Instantiate the configured cache strategy."""
    name = (strategy or CACHE_STRATEGY).lower()
    try:
        factory = _STRATEGIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown CACHE_STRATEGY {name!r}; expected one of {sorted(_STRATEGIES)}"
        ) from None
    cache = factory()
    logger.info("Cache strategy: %s", cache.name)
    return cache
