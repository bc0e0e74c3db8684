import io

from PIL import Image

from src.core.exceptions import PipelineStageError
from src.modules.stickers.models import PipelineStage
from src.pipeline.image_pipeline import ImagePipeline


def _is_sticker(data: bytes) -> bool:
    image = Image.open(io.BytesIO(data))
    return image.format == "WEBP" and image.size == (512, 512)


def test_all_stages_succeed(png_bytes, remover):
    result = ImagePipeline(remover=remover).process(png_bytes)

    assert result.success
    assert result.degraded_stages == []
    assert result.failure_stage is None
    assert _is_sticker(result.encoded_bytes)


def test_background_removal_failure_degrades(png_bytes):
    def broken(_):
        raise RuntimeError("model missing")

    result = ImagePipeline(remover=broken).process(png_bytes)

    assert result.success
    assert result.degraded_stages == [PipelineStage.BACKGROUND_REMOVAL]
    assert result.failure_stage == PipelineStage.BACKGROUND_REMOVAL
    assert _is_sticker(result.encoded_bytes)


def test_empty_background_removal_passes_original_through(png_bytes):
    seen = []

    def encoder(data, metadata):
        seen.append(data)
        return b"sticker"

    def empty_remover(data):
        return b""

    result = ImagePipeline(remover=empty_remover, encoder=encoder).process(png_bytes)

    assert result.success
    assert PipelineStage.BACKGROUND_REMOVAL in result.degraded_stages
    # Outline ran on the original input
    assert Image.open(io.BytesIO(seen[0])).size == (512, 512)


def test_outline_failure_passes_previous_output_through(png_bytes, remover, monkeypatch):
    def broken_outline(data, options):
        raise PipelineStageError("outline broke", stage="outline")

    monkeypatch.setattr("src.pipeline.image_pipeline.process_outline_stage", broken_outline)
    seen = []

    def encoder(data, metadata):
        seen.append(data)
        return b"sticker"

    result = ImagePipeline(remover=remover, encoder=encoder).process(png_bytes)

    assert result.success
    assert result.degraded_stages == [PipelineStage.OUTLINE]
    assert seen == [remover(png_bytes)]


def test_encoding_failure_is_fatal(png_bytes, remover):
    def broken_encoder(data, metadata):
        raise PipelineStageError("webp writer missing", stage="encode")

    result = ImagePipeline(remover=remover, encoder=broken_encoder).process(png_bytes)

    assert not result.success
    assert result.encoded_bytes is None
    assert result.failure_stage == PipelineStage.ENCODE


def test_garbage_input_fails_without_output(remover):
    result = ImagePipeline(remover=remover).process(b"definitely not an image")

    assert not result.success
    assert result.encoded_bytes is None
    assert result.failure_stage == PipelineStage.ENCODE
    assert result.degraded_stages == [PipelineStage.BACKGROUND_REMOVAL, PipelineStage.OUTLINE]


def test_calls_are_independent(png_bytes, remover):
    pipeline = ImagePipeline(remover=remover)
    first = pipeline.process(png_bytes)
    second = pipeline.process(png_bytes)

    assert first.success and second.success
    assert first.encoded_bytes == second.encoded_bytes
