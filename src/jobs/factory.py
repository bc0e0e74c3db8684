"""
Job queue selection.

The queue variant is a pure function of configuration, chosen once at
startup: a configured REDIS_HOST selects the distributed queue, its
absence the embedded one. Connectivity is only checked when
QUEUE_PROBE_BROKER is set, and an unreachable broker is then an error
rather than a silent fallback.
"""

from typing import Optional

from src.core.config import Settings
from src.core.logging import get_logger
from src.jobs.base import IJobQueue
from src.pipeline.runner import JobRunner

logger = get_logger(__name__)


class JobQueueFactory:
    """Factory for the process-wide job queue."""

    _instance: Optional[IJobQueue] = None

    @staticmethod
    def create(settings: Settings, runner: JobRunner) -> IJobQueue:
        if settings.use_distributed_queue:
            from src.jobs.distributed import DistributedJobQueue

            job_queue: IJobQueue = DistributedJobQueue(runner, queue_name=settings.QUEUE_NAME)
            if settings.QUEUE_PROBE_BROKER:
                job_queue.ping()
            logger.info(
                "job_queue_selected",
                mode=job_queue.mode,
                redis_host=settings.REDIS_HOST,
                redis_port=settings.REDIS_PORT
            )
            return job_queue

        from src.jobs.embedded import EmbeddedJobQueue

        logger.warning(
            "job_queue_selected",
            mode=EmbeddedJobQueue.mode,
            message="Running in local mode (in-memory queue). Redis is required for production."
        )
        return EmbeddedJobQueue(
            runner,
            delay_seconds=settings.EMBEDDED_QUEUE_DELAY_SECONDS,
            min_interval_seconds=settings.QUEUE_MIN_INTERVAL_SECONDS,
        )

    @classmethod
    def get_queue(cls, settings: Settings, runner: JobRunner) -> IJobQueue:
        if cls._instance is None:
            cls._instance = cls.create(settings, runner)
        return cls._instance

    @classmethod
    def reset(cls):
        """Shut down and drop the singleton (useful for testing)."""
        if cls._instance is not None:
            cls._instance.shutdown()
        cls._instance = None
