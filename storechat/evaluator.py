"""Background quality scoring of assistant replies.

A model judges each reply against the user's last message and returns
``{score, passed, reasoning}``.  Jobs are queued and consumed by a daemon
thread so the response path never waits on scoring; when the queue is full
new jobs are dropped.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any

from storechat.config import QA_MODEL
from storechat.services.llm_client import parse_json_reply
from storechat.services.metrics import metrics

logger = logging.getLogger(__name__)

PASS_THRESHOLD = 70
MAX_QUEUE_SIZE = 100
RECENT_RESULTS = 50

JUDGE_PROMPT = """You are a QA evaluator for a store's chat assistant.

USER MESSAGE: "{user_message}"
FUNCTION CALLED: {function}
ASSISTANT REPLY: "{reply}"

Score the reply from 0 to 100 for relevance, accuracy with respect to the
function called, tone, and whether it moves the user toward their goal.

Respond in JSON only:
{{"score": 0-100, "reasoning": "one or two sentences"}}"""


@dataclass
class EvaluationJob:
    request_id: str
    store_id: str
    mode: str
    user_message: str
    reply: str
    function_called: str | None = None


class EvaluationWorker:
    """Queue plus daemon thread that scores replies with a judge model."""

    def __init__(self, llm, *, model: str = QA_MODEL, maxsize: int = MAX_QUEUE_SIZE) -> None:
        self._llm = llm
        self._model = model
        self._queue: queue.Queue[EvaluationJob | None] = queue.Queue(maxsize=maxsize)
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self.recent: deque[dict[str, Any]] = deque(maxlen=RECENT_RESULTS)

    # ── Lifecycle ────────────────────────────────────────────────────

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._loop, daemon=True, name="qa-evaluator")
            self._thread.start()
        logger.info("QA evaluator started (model=%s)", self._model)

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self._queue.put(None)
        thread.join(timeout)

    # ── Public API ───────────────────────────────────────────────────

    def submit(self, job: EvaluationJob) -> bool:
        """Enqueue *job* without blocking.  Returns ``False`` if dropped."""
        try:
            self._queue.put_nowait(job)
        except queue.Full:
            logger.warning("QA queue full, dropping evaluation for request %s", job.request_id)
            return False
        return True

    def evaluate(self, job: EvaluationJob) -> dict[str, Any]:
        prompt = JUDGE_PROMPT.format(
            user_message=job.user_message,
            function=job.function_called or "none",
            reply=job.reply,
        )
        t0 = time.perf_counter()
        response = self._llm.complete(
            [{"role": "user", "content": prompt}],
            model=self._model,
            max_tokens=200,
            temperature=0.0,
            json_mode=True,
        )
        parsed = parse_json_reply(response.content, lenient=True)
        score = max(0, min(100, int(float(parsed.get("score", 0)))))
        result = {
            "request_id": job.request_id,
            "store_id": job.store_id,
            "mode": job.mode,
            "score": score,
            "passed": score >= PASS_THRESHOLD,
            "reasoning": str(parsed.get("reasoning") or ""),
        }
        metrics.record_success("qa", "evaluate", (time.perf_counter() - t0) * 1000)
        return result

    # ── Internal ─────────────────────────────────────────────────────

    def _loop(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    return
                result = self.evaluate(job)
                self.recent.append(result)
                logger.info(
                    "QA %s [%s] score=%d passed=%s",
                    job.request_id, job.mode, result["score"], result["passed"],
                )
            except Exception:
                logger.exception("QA evaluation failed for request %s", job.request_id if job else "?")
            finally:
                self._queue.task_done()
