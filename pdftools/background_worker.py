"""
Background Job Workers
======================
A fixed pool of daemon threads draining a FIFO queue of job ids.

Architecture:
    - ``submit`` puts a job id on the queue and returns immediately
    - Each worker thread takes one id at a time and calls the handler
    - The handler decides what running a job means; the pool only
      guarantees that exceptions never kill a worker thread
    - ``drain`` blocks until every submitted id has been handled

Usage:
    pool = JobWorkerPool(manager.execute, workers=2)
    pool.start()
    pool.submit(job_id)
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

_STOP = object()


class JobWorkerPool:
    """Runs ``handler(job_id)`` on background threads."""

    def __init__(self, handler: Callable[[str], object], workers: int = 2, name: str = "pdftools-worker"):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.handler = handler
        self.workers = workers
        self.name = name
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._busy = 0

    # ─── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> "JobWorkerPool":
        with self._lock:
            if self._threads:
                return self
            for i in range(self.workers):
                thread = threading.Thread(
                    target=self._run,
                    daemon=True,
                    name=f"{self.name}-{i}",
                )
                thread.start()
                self._threads.append(thread)
        logger.info(f"Started {self.workers} job worker thread(s)")
        return self

    def stop(self, timeout: Optional[float] = 5.0):
        """Stop the workers after the jobs already queued."""
        with self._lock:
            threads, self._threads = self._threads, []
        for _ in threads:
            self._queue.put(_STOP)
        for thread in threads:
            thread.join(timeout)
        if threads:
            logger.info("Job worker threads stopped")

    @property
    def running(self) -> bool:
        with self._lock:
            return any(t.is_alive() for t in self._threads)

    # ─── Work ─────────────────────────────────────────────────────────────

    def submit(self, job_id: str):
        self._queue.put(job_id)
        logger.debug(f"Queued job {job_id}")

    def drain(self):
        """Block until every submitted job has been handled."""
        self._queue.join()

    def pending(self) -> int:
        return self._queue.qsize()

    def busy(self) -> int:
        with self._lock:
            return self._busy

    def _run(self):
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                with self._lock:
                    self._busy += 1
                try:
                    self.handler(item)
                except Exception as e:
                    logger.error(f"Worker crashed while handling job {item}: {e}", exc_info=True)
                finally:
                    with self._lock:
                        self._busy -= 1
            finally:
                self._queue.task_done()
