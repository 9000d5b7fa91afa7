"""Shared ``httpx`` plumbing for every external service client.

Each client (store database, tab service, calendar, completion service)
subclasses :class:`HTTPServiceClient` and gets the same behaviour:

* exponential-backoff retries on timeouts, connection errors and 5xx
* 4xx responses fail fast with :class:`ExternalServiceError`
* one metrics data point per attempt, tagged with the client's
  ``service_name``
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from storechat.errors import ExternalServiceError
from storechat.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0


class HTTPServiceClient:
    """Thin ``httpx.Client`` wrapper with retries and metrics."""

    service_name = "http"

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        *,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        max_retries: int = MAX_RETRIES,
    ):
        self._max_retries = max(1, max_retries)
        self._client = httpx.Client(
            base_url=base_url,
            headers={"Content-Type": "application/json", **(headers or {})},
            timeout=timeout,
        )

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Execute an HTTP request with exponential-backoff retries.

        Returns the decoded JSON body, or ``None`` for empty responses.
        """
        operation = f"{method} {path.split('?')[0]}"
        extra: dict[str, Any] = {}
        if timeout is not None:
            extra["timeout"] = timeout

        last_error: Exception | None = None
        for attempt in range(1, self._max_retries + 1):
            t0 = time.perf_counter()
            try:
                response = self._client.request(
                    method,
                    path,
                    params=params,
                    json=json_body,
                    headers=headers,
                    **extra,
                )
                elapsed = (time.perf_counter() - t0) * 1000
                if response.status_code >= 400:
                    kind = "5xx" if response.status_code >= 500 else "4xx"
                    metrics.record_failure(
                        self.service_name, operation, error_type=kind, latency_ms=elapsed,
                    )
                    raise ExternalServiceError(
                        f"{self.service_name} error {response.status_code}: {response.text}",
                        service=self.service_name,
                        status_code=response.status_code,
                    )
                metrics.record_success(self.service_name, operation, latency_ms=elapsed)
                if response.status_code == 204 or not response.content:
                    return None
                return response.json()

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                elapsed = (time.perf_counter() - t0) * 1000
                metrics.record_failure(
                    self.service_name, operation,
                    error_type=type(exc).__name__, latency_ms=elapsed,
                )
                last_error = exc
                logger.warning(
                    "%s attempt %d/%d failed (%s).",
                    self.service_name, attempt, self._max_retries, type(exc).__name__,
                )
            except ExternalServiceError as exc:
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "%s server error on attempt %d/%d.",
                        self.service_name, attempt, self._max_retries,
                    )
                else:
                    raise

            if attempt < self._max_retries:
                time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        status = getattr(last_error, "status_code", None)
        raise ExternalServiceError(
            f"{self.service_name} request failed after {self._max_retries} attempt(s): {last_error}",
            service=self.service_name,
            status_code=status,
        ) from last_error
