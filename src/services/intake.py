"""
IntakeController - admission of inbound images.

Every gate is hard: filtered sources and non-image media are dropped
silently, quota and size rejections send the user a notice, and only
admitted images are staged and queued.
"""

import base64
import binascii
from typing import Callable, Optional

import httpx

from src.core.config import Settings
from src.core.exceptions import DeliveryError, MediaTooLargeError
from src.core.logging import LogContext, get_logger
from src.core.metrics import record_admission_rejection
from src.core.storage import IStaging, staging_filename
from src.engines.admission.rate_limiter import RateLimiter
from src.engines.admission.size_guard import is_acceptable
from src.integrations.delivery import IDelivery
from src.jobs.base import IJobQueue
from src.modules.stickers.models import InboundEvent, IntakeOutcome, JobDescriptor

logger = get_logger(__name__)

LIMIT_REACHED_NOTICE = (
    "🚫 *Limite Diário Atingido*\n\n"
    "Você já gerou {limit} figurinhas hoje. Tente novamente amanhã!"
)
FILE_TOO_LARGE_NOTICE = (
    "⚠️ *Arquivo Muito Grande*\n\n"
    "Sua imagem tem {size_kb:.0f}KB. O limite é {max_kb:.0f}KB.\n\n"
    "Tente diminuir a qualidade ou cortar a imagem."
)

MediaFetcher = Callable[[str, int], bytes]


def fetch_media(
    url: str,
    max_bytes: int,
    client: Optional[httpx.Client] = None,
    timeout: float = 30.0,
) -> bytes:
    """
    Download media the transport exposes by reference.

    The body is streamed and never buffered past `max_bytes`.

    Raises:
        MediaTooLargeError: declared or received size exceeds `max_bytes`
        httpx.HTTPError: transport failure or non-2xx response
    """
    stream = client.stream if client is not None else httpx.stream
    with stream("GET", url, timeout=timeout) as response:
        response.raise_for_status()

        declared = response.headers.get("Content-Length", "")
        if declared.isdigit() and int(declared) > max_bytes:
            raise MediaTooLargeError(int(declared), max_bytes)

        buffer = bytearray()
        for chunk in response.iter_bytes():
            buffer.extend(chunk)
            if len(buffer) > max_bytes:
                raise MediaTooLargeError(len(buffer), max_bytes)
        return bytes(buffer)


class IntakeController:
    def __init__(
        self,
        settings: Settings,
        rate_limiter: RateLimiter,
        staging: IStaging,
        job_queue: IJobQueue,
        delivery: IDelivery,
        fetcher: Optional[MediaFetcher] = None,
    ):
        self.settings = settings
        self.rate_limiter = rate_limiter
        self.staging = staging
        self.job_queue = job_queue
        self.delivery = delivery
        self.fetcher = fetcher or fetch_media

    def is_applicable_source(self, identity: str) -> bool:
        """Groups and broadcast/status channels are never served."""
        if identity in self.settings.ignored_identities:
            return False
        return not any(identity.endswith(s) for s in self.settings.ignored_identity_suffixes)

    @staticmethod
    def is_image(event: InboundEvent) -> bool:
        return bool(event.has_media and event.media_type and event.media_type.startswith("image/"))

    def _load_media(self, event: InboundEvent) -> Optional[bytes]:
        if event.media_base64 is not None:
            try:
                return base64.b64decode(event.media_base64, validate=True)
            except (binascii.Error, ValueError) as e:
                logger.warning("media_decode_failed", error=str(e))
                return None
        if event.media_ref is not None:
            try:
                return self.fetcher(event.media_ref, self.settings.MAX_FILE_SIZE_BYTES)
            except httpx.HTTPError as e:
                logger.warning("media_fetch_failed", media_ref=event.media_ref, error=str(e))
                return None
        logger.warning("media_missing")
        return None

    def _notify(self, identity: str, text: str) -> None:
        # The rejection stands even when the notice cannot be delivered
        try:
            self.delivery.send_notice(identity, text)
        except DeliveryError as e:
            logger.warning("notice_delivery_failed", identity=identity, error=e.message)

    def _reject_size(self, identity: str, size: int) -> IntakeOutcome:
        max_bytes = self.settings.MAX_FILE_SIZE_BYTES
        logger.info("admission_rejected", identity=identity, reason="file_too_large", size=size)
        record_admission_rejection("file_too_large")
        self._notify(
            identity,
            FILE_TOO_LARGE_NOTICE.format(size_kb=size / 1024, max_kb=max_bytes / 1024)
        )
        return IntakeOutcome.REJECTED_SIZE

    def handle(self, event: InboundEvent) -> IntakeOutcome:
        with LogContext(correlation_id=event.event_id):
            return self._handle(event)

    def _handle(self, event: InboundEvent) -> IntakeOutcome:
        identity = event.identity

        if not self.is_applicable_source(identity):
            return IntakeOutcome.IGNORED

        if not self.is_image(event):
            return IntakeOutcome.IGNORED

        logger.info("image_received", identity=identity, media_type=event.media_type)

        limit = self.settings.DAILY_LIMIT
        if not self.rate_limiter.check_and_consume(identity, limit):
            logger.info("admission_rejected", identity=identity, reason="daily_limit", limit=limit)
            record_admission_rejection("daily_limit")
            self._notify(identity, LIMIT_REACHED_NOTICE.format(limit=limit))
            return IntakeOutcome.REJECTED_LIMIT

        try:
            media = self._load_media(event)
        except MediaTooLargeError as e:
            return self._reject_size(identity, e.size)
        if media is None:
            return IntakeOutcome.IGNORED

        if not is_acceptable(len(media), self.settings.MAX_FILE_SIZE_BYTES):
            return self._reject_size(identity, len(media))

        staging_ref = self.staging.write(media, staging_filename(event.event_id, event.media_type))
        descriptor = JobDescriptor(
            identity=identity,
            staging_ref=staging_ref,
            correlation_id=event.event_id,
        )
        self.job_queue.submit(descriptor)

        logger.info("image_queued", identity=identity, staging_ref=staging_ref)
        return IntakeOutcome.QUEUED
