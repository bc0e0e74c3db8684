"""
JobRunner - executes one dequeued sticker job.

Shared by the embedded and distributed queues so both behave the same:
read staging once, run the pipeline, deliver, and always delete the
staging artifact. Fatal errors end the job; they are logged and counted
and never retried.
"""

import traceback
from functools import lru_cache

from src.core.config import settings
from src.core.exceptions import DeliveryError, PipelineStageError, StickerBotException
from src.core.logging import LogContext, get_logger
from src.core.metrics import active_jobs_gauge, record_job_completion
from src.core.storage import IStaging, get_staging
from src.integrations.delivery import IDelivery, create_delivery
from src.modules.stickers.models import JobDescriptor, JobState, PipelineStage
from src.pipeline.image_pipeline import ImagePipeline

logger = get_logger(__name__)


class JobRunner:
    def __init__(self, pipeline: ImagePipeline, staging: IStaging, delivery: IDelivery):
        self.pipeline = pipeline
        self.staging = staging
        self.delivery = delivery

    def run(self, descriptor: JobDescriptor) -> JobState:
        with LogContext(correlation_id=descriptor.correlation_id):
            logger.info("job_dequeued", identity=descriptor.identity, staging_ref=descriptor.staging_ref)
            active_jobs_gauge.inc()
            try:
                return self._process(descriptor)
            finally:
                active_jobs_gauge.dec()
                self.cleanup(descriptor)

    def _process(self, descriptor: JobDescriptor) -> JobState:
        logger.info("job_processing")
        try:
            raw_bytes = self.staging.read(descriptor.staging_ref)

            result = self.pipeline.process(raw_bytes)
            if not result.success:
                raise PipelineStageError(
                    "Sticker encoding failed",
                    stage=(result.failure_stage or PipelineStage.ENCODE).value
                )

            self.delivery.send_sticker_result(descriptor.identity, result.encoded_bytes)

        except DeliveryError as e:
            logger.error("job_failed", error=e.message, failure_stage="delivery")
            record_job_completion("failed", failure_stage="delivery")
            return JobState.FAILED

        except StickerBotException as e:
            failure_stage = e.stage or "staging"
            logger.error("job_failed", error=e.message, failure_stage=failure_stage)
            record_job_completion("failed", failure_stage=failure_stage)
            return JobState.FAILED

        except Exception as e:
            logger.error(
                "job_unexpected_error",
                error=str(e),
                error_type=type(e).__name__,
                traceback=traceback.format_exc()
            )
            record_job_completion("failed", failure_stage="unknown")
            return JobState.FAILED

        logger.info(
            "job_succeeded",
            identity=descriptor.identity,
            degraded_stages=[s.value for s in result.degraded_stages]
        )
        record_job_completion("completed")
        return JobState.SUCCEEDED

    def cleanup(self, descriptor: JobDescriptor) -> bool:
        """Delete the staging artifact. Safe to call any number of times."""
        return self.release_staging(descriptor.staging_ref)

    def release_staging(self, staging_ref: str) -> bool:
        try:
            removed = self.staging.delete(staging_ref)
        except (OSError, StickerBotException) as e:
            logger.error("staging_cleanup_failed", staging_ref=staging_ref, error=str(e))
            return False
        if removed:
            logger.info("staging_cleaned", staging_ref=staging_ref)
        return removed


@lru_cache(maxsize=None)
def get_job_runner() -> JobRunner:
    """Process-wide runner built from settings (one per worker process)."""
    return JobRunner(
        pipeline=ImagePipeline.from_settings(settings),
        staging=get_staging(),
        delivery=create_delivery(),
    )
