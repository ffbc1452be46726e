# src/qrcoded/services/generation_queue.py

"""
In-process job queue for QR generation.

Producers (API requests) call `enqueue()`, which returns as soon as the jobs
sit in a FIFO queue.Queue. A fixed pool of worker threads drains it; each
`get()` hands a job to exactly one thread, and a thread finishes a job
before taking the next. Every job ends in exactly one JobOutcome, which is
logged, counted, kept in a bounded history and handed to `on_outcome`.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from qrcoded import metrics
from qrcoded.errors import GenerationError
from qrcoded.services.generation_worker import GenerationJob, GenerationWorker

logger = logging.getLogger(__name__)

MAX_QR_COUNT = 100
WORKER_COUNT = int(os.getenv("QR_WORKER_COUNT", "2"))
HISTORY_SIZE = int(os.getenv("QR_JOB_HISTORY_SIZE", "1000"))

_STOP = object()


def clamp_count(count: Optional[int]) -> int:
    """Missing or non-positive counts mean one code; bursts are capped."""
    if not count or count < 1:
        return 1
    return min(count, MAX_QR_COUNT)


@dataclass
class JobOutcome:
    job_id: str
    status: str  # "succeeded" | "failed"
    code_id: Optional[str] = None
    image_url: Optional[str] = None
    stage: Optional[str] = None
    error: Optional[str] = None
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["finished_at"] = self.finished_at.isoformat()
        return data


class GenerationQueue:
    def __init__(
        self,
        worker: Optional[GenerationWorker] = None,
        *,
        worker_count: int = WORKER_COUNT,
        history_size: int = HISTORY_SIZE,
        on_outcome: Optional[Callable[[JobOutcome], None]] = None,
    ):
        self.worker = worker or GenerationWorker()
        self.worker_count = max(1, worker_count)
        self.on_outcome = on_outcome

        self._queue: "queue.Queue" = queue.Queue()
        self._threads: List[threading.Thread] = []
        self._stopping = False
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._pending = 0
        self._succeeded = 0
        self._failed = 0
        self._history: "deque[JobOutcome]" = deque(maxlen=history_size)

    # --- lifecycle ------------------------------------------------------------

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self.running:
            if self._stopping:
                raise RuntimeError(
                    "QR generation queue is still stopping; "
                    f"{len(self._threads)} worker(s) have not exited yet"
                )
            return

        self._stopping = False
        self._threads = [
            threading.Thread(target=self._run, name=f"qr-worker-{i}", daemon=True)
            for i in range(self.worker_count)
        ]
        for t in self._threads:
            t.start()
        logger.info("Started QR generation queue with %d worker(s)", self.worker_count)

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop the workers after the jobs already accepted are drained.

        Threads still busy when `timeout` runs out stay tracked and keep
        their stop sentinel, so `running` stays True and `start()` refuses
        until they exit. Calling `stop()` again waits for them.
        """
        if not self._threads:
            return

        if not self._stopping:
            for _ in self._threads:
                self._queue.put(_STOP)
            self._stopping = True
        for t in self._threads:
            t.join(timeout)

        self._threads = [t for t in self._threads if t.is_alive()]
        if self._threads:
            logger.warning(
                "QR generation queue stop timed out; %d worker(s) still busy (pending=%d)",
                len(self._threads),
                self.pending,
            )
            return

        self._stopping = False
        logger.info("Stopped QR generation queue (pending=%d)", self.pending)

    # --- producers ------------------------------------------------------------

    def enqueue(self, count: Optional[int] = 1) -> List[GenerationJob]:
        count = clamp_count(count)
        jobs = [GenerationJob() for _ in range(count)]

        with self._lock:
            self._pending += count
        for job in jobs:
            self._queue.put(job)

        metrics.qr_jobs_enqueued_total.inc(count)
        logger.info("Enqueued %d QR generation job(s)", count)
        return jobs

    # --- consumers ------------------------------------------------------------

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                self._record(self._process(job))
            finally:
                self._queue.task_done()

    def _process(self, job: GenerationJob) -> JobOutcome:
        try:
            result = self.worker.process(job)
        except GenerationError as exc:
            logger.error(
                "Generation job %s failed at stage=%s (code_id=%s): %s",
                job.job_id,
                exc.stage,
                exc.code_id,
                exc,
                exc_info=exc,
            )
            return JobOutcome(
                job_id=job.job_id,
                status="failed",
                code_id=exc.code_id,
                stage=exc.stage,
                error=str(exc),
            )
        except Exception as exc:
            logger.exception("Generation job %s failed unexpectedly", job.job_id)
            return JobOutcome(job_id=job.job_id, status="failed", stage="unknown", error=str(exc))

        return JobOutcome(
            job_id=job.job_id,
            status="succeeded",
            code_id=result.code_id,
            image_url=result.image_url,
        )

    def _record(self, outcome: JobOutcome) -> None:
        if outcome.status == "succeeded":
            metrics.qr_jobs_succeeded_total.inc()
        else:
            metrics.qr_jobs_failed_total.labels(stage=outcome.stage).inc()

        with self._idle:
            if outcome.status == "succeeded":
                self._succeeded += 1
            else:
                self._failed += 1
            self._history.append(outcome)
            self._pending -= 1
            self._idle.notify_all()

        if self.on_outcome is not None:
            try:
                self.on_outcome(outcome)
            except Exception:
                logger.exception("on_outcome callback failed for job %s", outcome.job_id)

    # --- observation ----------------------------------------------------------

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait until every accepted job has an outcome. False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout)

    def outcomes(self) -> List[JobOutcome]:
        with self._lock:
            return list(self._history)

    def stats(self, recent_failures: int = 20) -> Dict:
        with self._lock:
            failures = [o for o in self._history if o.status == "failed"][-recent_failures:]
            return {
                "pending": self._pending,
                "succeeded": self._succeeded,
                "failed": self._failed,
                "workers": self.worker_count,
                "running": self.running,
                "recentFailures": [o.to_dict() for o in failures],
            }
