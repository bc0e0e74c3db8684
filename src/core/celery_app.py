"""
Celery Application Configuration

Configures Celery for the distributed sticker queue:
- Redis broker built from REDIS_HOST / REDIS_PORT
- One task in flight per worker, late acknowledgement
- No result backend (submission is fire-and-forget)

Run a worker with:
    celery -A src.core.celery_app worker --concurrency=1
"""

from celery import Celery
from kombu import Queue

from src.core.config import settings
from src.core.logging import setup_logging

# Workers log through structlog like the web process
setup_logging(log_level=settings.LOG_LEVEL, json_format=settings.LOG_FORMAT_JSON)

# Create Celery app
celery_app = Celery(
    "sticker_bot",
    broker=settings.redis_url,
    include=[
        "src.jobs.distributed",
    ]
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,

    # Task tracking
    task_track_started=True,
    task_time_limit=settings.JOB_LOCK_TIMEOUT_SECONDS,
    task_soft_time_limit=settings.JOB_LOCK_TIMEOUT_SECONDS - 60,

    # Worker settings
    worker_prefetch_multiplier=1,  # Process one task at a time
    worker_concurrency=1,

    # Queue definitions
    task_default_queue=settings.QUEUE_NAME,
    task_queues=(
        Queue(settings.QUEUE_NAME, routing_key=settings.QUEUE_NAME),
    ),

    # Task routing
    task_routes={
        "src.jobs.distributed.process_sticker_job": {"queue": settings.QUEUE_NAME},
    },

    # Late acknowledgment: a job lost with its worker is redelivered
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    worker_hijack_root_logger=False,
)
