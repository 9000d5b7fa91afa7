"""CloudWatch metrics for external calls and pipeline stages.

Two families of series are published under the ``StoreChat`` namespace:

``ExternalAPI/*``
    one request count, error count and latency per call to OpenRouter, the
    tab service, the calendar, the store database, and per tool execution.
``Pipeline/*``
    latency per (mode, stage) of the debug trace, plus the model cost of
    that stage in micro-dollars.

Points are buffered in memory and pushed by a daemon thread every
``FLUSH_INTERVAL_SECONDS``.  With ``METRICS_ENABLED`` unset they are only
logged at DEBUG level and dropped on flush.

>>> from storechat.services.metrics import metrics
>>> metrics.record_success("calendar", "GET /calendars/{id}/events", latency_ms=123.4)
>>> metrics.record_stage("classic", "tool_selection", 250.0, cost_usd=0.0002)
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "StoreChat"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # PutMetricData limit per call


def _dims(**pairs: str) -> list[dict[str, str]]:
    return [{"Name": name, "Value": value} for name, value in pairs.items()]


class MetricsClient:
    """Buffered CloudWatch publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── External calls ───────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        self._record_call(service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        self._record_call(service, operation, latency_ms, error_type=error_type)

    def _record_call(
        self,
        service: str,
        operation: str,
        latency_ms: float,
        *,
        error_type: str | None = None,
    ) -> None:
        status = "failure" if error_type else "success"
        points = [self._point("ExternalAPI/RequestCount", _dims(Service=service, Status=status), 1, "Count")]
        if error_type:
            points.append(
                self._point("ExternalAPI/ErrorCount", _dims(Service=service, ErrorType=error_type), 1, "Count")
            )
        # Failures before any response carry no latency
        if not error_type or latency_ms > 0:
            points.append(
                self._point(
                    "ExternalAPI/Latency", _dims(Service=service, Operation=operation), latency_ms, "Milliseconds",
                )
            )
        self._extend(points)
        logger.debug(
            "Metric: %s %s %s%s latency=%.1fms",
            service, operation, status, f" error={error_type}" if error_type else "", latency_ms,
        )

    # ── Pipeline stages ──────────────────────────────────────────────

    def record_stage(self, mode: str, stage: str, latency_ms: float, cost_usd: float = 0.0) -> None:
        """Record one trace stage; stages without a model call carry no cost point."""
        dims = _dims(Mode=mode, Stage=stage)
        points = [self._point("Pipeline/StageLatency", dims, latency_ms, "Milliseconds")]
        if cost_usd > 0:
            points.append(self._point("Pipeline/CostMicroUSD", dims, round(cost_usd * 1_000_000, 3), "None"))
        self._extend(points)
        logger.debug("Metric: %s/%s latency=%.1fms cost=$%.6f", mode, stage, latency_ms, cost_usd)

    # ── Publishing ───────────────────────────────────────────────────

    def flush(self) -> int:
        """Send buffered points to CloudWatch.  Returns the number sent."""
        with self._lock:
            batch, self._buffer = self._buffer, []
        if not batch:
            return 0
        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    def close(self) -> int:
        """Stop the flush thread and send whatever is still buffered."""
        self._stopped.set()
        return self.flush()

    # ── Internal ─────────────────────────────────────────────────────

    @staticmethod
    def _point(name: str, dims: list[dict[str, str]], value: float, unit: str) -> dict[str, Any]:
        return {
            "MetricName": name,
            "Dimensions": dims,
            "Timestamp": datetime.now(UTC),
            "Value": value,
            "Unit": unit,
        }

    def _extend(self, points: list[dict[str, Any]]) -> None:
        with self._lock:
            self._buffer.extend(points)

    def _start_flush_thread(self) -> None:
        def _loop() -> None:
            while not self._stopped.wait(FLUSH_INTERVAL_SECONDS):
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        threading.Thread(target=_loop, daemon=True, name="metrics-flush").start()
        atexit.register(self.close)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


metrics = MetricsClient()
