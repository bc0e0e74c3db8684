"""
Embedded (in-process) job queue.

Non-durable fallback used when no Redis host is configured: a single
daemon thread drains a FIFO, each job becoming eligible a fixed delay
after submission. Pending jobs are lost if the process dies.
"""

import queue
import threading
import time
import traceback
from typing import Optional, Tuple

from src.core.logging import get_logger
from src.core.metrics import record_job_submitted
from src.jobs.base import IJobQueue
from src.jobs.throttle import IntervalThrottle
from src.modules.stickers.models import JobDescriptor
from src.pipeline.runner import JobRunner

logger = get_logger(__name__)

_QueueItem = Optional[Tuple[float, JobDescriptor]]


class EmbeddedJobQueue(IJobQueue):
    mode = "embedded"

    def __init__(
        self,
        runner: JobRunner,
        delay_seconds: float = 1.0,
        min_interval_seconds: float = 2.0,
        throttle: Optional[IntervalThrottle] = None,
    ):
        self.runner = runner
        self.delay_seconds = delay_seconds
        self.throttle = throttle or IntervalThrottle(min_interval_seconds)
        self._queue: "queue.Queue[_QueueItem]" = queue.Queue()
        self._closed = False
        self._worker = threading.Thread(
            target=self._drain,
            name="embedded-sticker-worker",
            daemon=True
        )
        self._worker.start()

    def submit(self, descriptor: JobDescriptor) -> None:
        if self._closed:
            logger.error("job_submit_failed", correlation_id=descriptor.correlation_id, error="queue is shut down")
            record_job_submitted(self.mode, status="failed")
            self.runner.cleanup(descriptor)
            return

        self._queue.put((time.monotonic() + self.delay_seconds, descriptor))
        record_job_submitted(self.mode)
        logger.info(
            "job_submitted",
            mode=self.mode,
            correlation_id=descriptor.correlation_id,
            pending=self._queue.qsize()
        )

    def _drain(self):
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                ready_at, descriptor = item
                wait = ready_at - time.monotonic()
                if wait > 0:
                    time.sleep(wait)
                with self.throttle.slot():
                    self.runner.run(descriptor)
            except Exception as e:
                # Keep the worker alive; the runner already logs job failures
                logger.error(
                    "embedded_worker_error",
                    error=str(e),
                    traceback=traceback.format_exc()
                )
            finally:
                self._queue.task_done()

    def join(self):
        """Block until every submitted job has finished."""
        self._queue.join()

    def shutdown(self, wait: bool = True) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put(None)
        if wait:
            self._worker.join()
