"""
Distributed job queue on Celery + Redis.

Jobs survive producer restarts on the broker and any number of worker
processes may drain the queue. RedisThrottle keeps a single job active
across all of them and spaces job starts by the configured interval.
Delivery is at-least-once: a worker lost mid-job causes redelivery.
"""

from functools import lru_cache
from typing import Any, Dict

from kombu.exceptions import OperationalError
from pydantic import ValidationError
from redis import Redis
from redis.exceptions import RedisError

from src.core.celery_app import celery_app
from src.core.config import settings
from src.core.exceptions import QueueUnavailableError
from src.core.logging import LogContext, get_logger
from src.core.metrics import record_job_completion, record_job_submitted
from src.jobs.base import IJobQueue
from src.jobs.throttle import RedisThrottle
from src.modules.stickers.models import JobDescriptor, JobState
from src.pipeline.runner import JobRunner, get_job_runner

logger = get_logger(__name__)


@lru_cache(maxsize=None)
def get_redis_throttle() -> RedisThrottle:
    return RedisThrottle(
        Redis.from_url(settings.redis_url),
        name=settings.QUEUE_NAME,
        min_interval=settings.QUEUE_MIN_INTERVAL_SECONDS,
        lock_timeout=settings.JOB_LOCK_TIMEOUT_SECONDS,
        acquire_timeout=settings.QUEUE_SLOT_WAIT_SECONDS,
    )


@celery_app.task(
    bind=True,
    name="src.jobs.distributed.process_sticker_job",
    max_retries=0,
    acks_late=True
)
def process_sticker_job(self, descriptor: Dict[str, Any]) -> str:
    """
    Celery task for one sticker job.

    Args:
        descriptor: JobDescriptor as a dict

    Returns:
        Terminal job state
    """
    runner = get_job_runner()
    try:
        job = JobDescriptor(**descriptor)
    except ValidationError as e:
        logger.error("job_failed", error=str(e), failure_stage="queue")
        record_job_completion("failed", failure_stage="queue")
        staging_ref = descriptor.get("staging_ref")
        if isinstance(staging_ref, str) and staging_ref:
            runner.release_staging(staging_ref)
        return JobState.FAILED.value

    started = False
    try:
        with get_redis_throttle().slot():
            started = True
            return runner.run(job).value
    except Exception as e:
        # JobRunner.run cleans up once it has started
        if started:
            raise
        with LogContext(correlation_id=job.correlation_id):
            logger.error(
                "job_failed",
                error=str(e),
                error_type=type(e).__name__,
                failure_stage="queue"
            )
        record_job_completion("failed", failure_stage="queue")
        runner.cleanup(job)
        return JobState.FAILED.value


class DistributedJobQueue(IJobQueue):
    mode = "distributed"

    def __init__(self, runner: JobRunner, task=process_sticker_job, queue_name: str = settings.QUEUE_NAME):
        self.runner = runner
        self.task = task
        self.queue_name = queue_name

    def submit(self, descriptor: JobDescriptor) -> None:
        try:
            self.task.apply_async(args=[descriptor.model_dump()], queue=self.queue_name)
        except (OperationalError, RedisError) as e:
            logger.error(
                "job_submit_failed",
                mode=self.mode,
                correlation_id=descriptor.correlation_id,
                error=str(e)
            )
            record_job_submitted(self.mode, status="failed")
            self.runner.cleanup(descriptor)
            return

        record_job_submitted(self.mode)
        logger.info("job_submitted", mode=self.mode, correlation_id=descriptor.correlation_id)

    def ping(self) -> bool:
        """
        Verify the broker accepts connections.

        Raises:
            QueueUnavailableError: broker unreachable
        """
        try:
            with celery_app.connection_for_write() as conn:
                conn.ensure_connection(max_retries=1)
        except (OperationalError, OSError) as e:
            raise QueueUnavailableError(f"Redis broker unreachable: {e}")
        return True
