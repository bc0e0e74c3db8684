import base64
from datetime import date
from unittest.mock import MagicMock

import httpx
import pytest

from src.core.exceptions import DeliveryError
from src.engines.admission.rate_limiter import RateLimiter
from src.modules.stickers.models import InboundEvent, IntakeOutcome
from src.services.intake import IntakeController, fetch_media


@pytest.fixture
def job_queue():
    return MagicMock()


@pytest.fixture
def intake(test_settings, staging, job_queue, delivery):
    return IntakeController(
        settings=test_settings,
        rate_limiter=RateLimiter(today=lambda: date(2024, 5, 20)),
        staging=staging,
        job_queue=job_queue,
        delivery=delivery,
    )


def _event(data: bytes, identity="5511999@c.us", media_type="image/png", event_id="3EB0C431") -> InboundEvent:
    return InboundEvent(
        identity=identity,
        has_media=True,
        media_type=media_type,
        media_base64=base64.b64encode(data).decode("utf-8"),
        event_id=event_id,
    )


@pytest.mark.parametrize("identity", ["120363@g.us", "status@broadcast"])
def test_groups_and_broadcasts_are_ignored(intake, job_queue, delivery, png_bytes, identity):
    outcome = intake.handle(_event(png_bytes, identity=identity))

    assert outcome == IntakeOutcome.IGNORED
    assert intake.rate_limiter.usage(identity) is None
    job_queue.submit.assert_not_called()
    assert delivery.notices == []


def test_non_image_media_is_ignored(intake, job_queue, png_bytes):
    outcome = intake.handle(_event(png_bytes, media_type="video/mp4"))

    assert outcome == IntakeOutcome.IGNORED
    job_queue.submit.assert_not_called()


def test_text_message_is_ignored(intake, job_queue):
    event = InboundEvent(identity="5511999@c.us", has_media=False, event_id="x")

    assert intake.handle(event) == IntakeOutcome.IGNORED
    job_queue.submit.assert_not_called()


def test_accepted_image_is_staged_and_queued(intake, job_queue, staging, delivery, png_bytes):
    outcome = intake.handle(_event(png_bytes))

    assert outcome == IntakeOutcome.QUEUED
    job_queue.submit.assert_called_once()
    descriptor = job_queue.submit.call_args.args[0]
    assert descriptor.identity == "5511999@c.us"
    assert descriptor.correlation_id == "3EB0C431"
    assert descriptor.staging_ref.startswith("3EB0C431")
    assert descriptor.staging_ref.endswith(".png")
    assert staging.read(descriptor.staging_ref) == png_bytes
    assert delivery.notices == []


def test_limit_reached_sends_notice(intake, job_queue, delivery, png_bytes, test_settings):
    intake.settings = test_settings.model_copy(update={"DAILY_LIMIT": 1})

    assert intake.handle(_event(png_bytes, event_id="a")) == IntakeOutcome.QUEUED
    assert intake.handle(_event(png_bytes, event_id="b")) == IntakeOutcome.REJECTED_LIMIT

    assert job_queue.submit.call_count == 1
    assert len(delivery.notices) == 1
    identity, text = delivery.notices[0]
    assert identity == "5511999@c.us"
    assert "Limite Diário Atingido" in text
    assert "1 figurinhas" in text


def test_too_large_sends_notice_and_stages_nothing(intake, job_queue, staging, delivery):
    outcome = intake.handle(_event(b"\x00" * (300 * 1024), media_type="image/jpeg"))

    assert outcome == IntakeOutcome.REJECTED_SIZE
    job_queue.submit.assert_not_called()
    assert list(staging.base_path.iterdir()) == []
    _, text = delivery.notices[0]
    assert "Arquivo Muito Grande" in text
    assert "300KB" in text
    assert "200KB" in text


def test_exactly_max_size_is_accepted(intake, job_queue):
    outcome = intake.handle(_event(b"\x00" * 204800))

    assert outcome == IntakeOutcome.QUEUED


def test_invalid_base64_is_ignored(intake, job_queue):
    event = InboundEvent(
        identity="5511999@c.us",
        has_media=True,
        media_type="image/png",
        media_base64="###not-base64###",
        event_id="bad",
    )

    assert intake.handle(event) == IntakeOutcome.IGNORED
    job_queue.submit.assert_not_called()


def test_media_by_reference_is_fetched(test_settings, staging, job_queue, delivery, png_bytes):
    fetched = []

    def fetcher(ref, max_bytes):
        fetched.append((ref, max_bytes))
        return png_bytes

    intake = IntakeController(test_settings, RateLimiter(), staging, job_queue, delivery, fetcher=fetcher)
    event = InboundEvent(
        identity="5511999@c.us",
        has_media=True,
        media_type="image/png",
        media_ref="http://transport/media/3EB0",
        event_id="ref",
    )

    assert intake.handle(event) == IntakeOutcome.QUEUED
    assert fetched == [("http://transport/media/3EB0", 204800)]


def test_rejection_stands_when_notice_cannot_be_delivered(test_settings, staging, job_queue, png_bytes):
    delivery = MagicMock()
    delivery.send_notice.side_effect = DeliveryError("Transport unreachable")
    intake = IntakeController(
        test_settings.model_copy(update={"MAX_FILE_SIZE_BYTES": 10}),
        RateLimiter(), staging, job_queue, delivery,
    )

    assert intake.handle(_event(png_bytes)) == IntakeOutcome.REJECTED_SIZE
    delivery.send_notice.assert_called_once()


def test_failed_fetch_is_ignored(test_settings, staging, job_queue, delivery):
    def fetcher(ref, max_bytes):
        raise httpx.ConnectError("connection refused")

    intake = IntakeController(test_settings, RateLimiter(), staging, job_queue, delivery, fetcher=fetcher)
    event = InboundEvent(
        identity="5511999@c.us", has_media=True, media_type="image/png", media_ref="http://x", event_id="f"
    )

    assert intake.handle(event) == IntakeOutcome.IGNORED
    job_queue.submit.assert_not_called()


def _ref_event(event_id="ref") -> InboundEvent:
    return InboundEvent(
        identity="5511999@c.us",
        has_media=True,
        media_type="image/png",
        media_ref="http://transport/media/3EB0",
        event_id=event_id,
    )


def _fetching_intake(handler, test_settings, staging, job_queue, delivery) -> IntakeController:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return IntakeController(
        test_settings, RateLimiter(), staging, job_queue, delivery,
        fetcher=lambda ref, max_bytes: fetch_media(ref, max_bytes, client=client),
    )


def test_oversized_reference_is_rejected_from_content_length(test_settings, staging, job_queue, delivery):
    intake = _fetching_intake(
        lambda request: httpx.Response(200, content=b"\x00" * (300 * 1024)),
        test_settings, staging, job_queue, delivery,
    )

    assert intake.handle(_ref_event()) == IntakeOutcome.REJECTED_SIZE
    job_queue.submit.assert_not_called()
    assert list(staging.base_path.iterdir()) == []
    _, text = delivery.notices[0]
    assert "Arquivo Muito Grande" in text
    assert "300KB" in text


def test_oversized_stream_stops_reading_past_limit(test_settings, staging, job_queue, delivery):
    chunk = b"\x00" * (64 * 1024)
    served = []

    def body():
        # 1 GiB if read to the end
        for _ in range(16 * 1024):
            served.append(len(chunk))
            yield chunk

    intake = _fetching_intake(
        lambda request: httpx.Response(200, content=body()),
        test_settings, staging, job_queue, delivery,
    )

    assert intake.handle(_ref_event()) == IntakeOutcome.REJECTED_SIZE
    assert sum(served) <= 204800 + len(chunk)
    job_queue.submit.assert_not_called()
    assert "Arquivo Muito Grande" in delivery.notices[0][1]


def test_reference_within_limit_is_queued(test_settings, staging, job_queue, delivery, png_bytes):
    intake = _fetching_intake(
        lambda request: httpx.Response(200, content=png_bytes),
        test_settings, staging, job_queue, delivery,
    )

    assert intake.handle(_ref_event()) == IntakeOutcome.QUEUED
    descriptor = job_queue.submit.call_args.args[0]
    assert staging.read(descriptor.staging_ref) == png_bytes


def test_reference_error_status_is_ignored(test_settings, staging, job_queue, delivery):
    intake = _fetching_intake(
        lambda request: httpx.Response(404),
        test_settings, staging, job_queue, delivery,
    )

    assert intake.handle(_ref_event()) == IntakeOutcome.IGNORED
    job_queue.submit.assert_not_called()
