"""
Pipeline Stage Implementations

Each stage is a separate function that can be called independently.
Stages raise PipelineStageError on failure; ImagePipeline decides whether
that failure degrades to a pass-through or ends the job.
"""

import io
from dataclasses import dataclass
from typing import Callable, Optional

from PIL import Image, ImageFilter, ImageOps

from src.core.config import Settings
from src.core.logging import get_logger
from src.core.metrics import track_stage_latency
from src.core.exceptions import PipelineStageError, get_circuit_breaker
from src.modules.stickers.models import PipelineStage
from src.pipeline.encoding import StickerMetadata, encode_sticker

logger = get_logger(__name__)

BackgroundRemover = Callable[[bytes], bytes]


@dataclass(frozen=True)
class OutlineOptions:
    """Geometry of the outline stage."""
    canvas_size: int = 512
    inner_size: int = 400
    blur_radius: float = 15
    threshold: int = 50

    @classmethod
    def from_settings(cls, settings: Settings) -> "OutlineOptions":
        return cls(
            canvas_size=settings.STICKER_CANVAS_SIZE,
            inner_size=settings.STICKER_INNER_SIZE,
            blur_radius=settings.OUTLINE_BLUR_RADIUS,
            threshold=settings.OUTLINE_THRESHOLD,
        )


# =============================================================================
# Stage 1: Background Removal (Rembg)
# =============================================================================

def remove_background(image_bytes: bytes) -> bytes:
    """Remove the background with rembg and return a PNG with alpha."""
    # Import rembg lazily (model session is heavy)
    from rembg import remove

    input_image = Image.open(io.BytesIO(image_bytes))
    output_image = remove(input_image)

    output_buffer = io.BytesIO()
    output_image.save(output_buffer, format="PNG")
    return output_buffer.getvalue()


def process_background_removal_stage(
    image_bytes: bytes,
    remover: Optional[BackgroundRemover] = None
) -> bytes:
    """
    Run background removal behind the circuit breaker.

    Raises:
        PipelineStageError: tool error, empty result, or circuit open
    """
    stage = PipelineStage.BACKGROUND_REMOVAL.value
    circuit = get_circuit_breaker(stage)
    remover = remover or remove_background

    if not circuit.can_execute():
        raise PipelineStageError("Background removal is temporarily unavailable", stage=stage)

    logger.info("background_removal_starting", input_size=len(image_bytes))

    try:
        with track_stage_latency(stage):
            output_bytes = remover(image_bytes)
    except Exception as e:
        circuit.record_failure(e)
        raise PipelineStageError(f"Background removal failed: {e}", stage=stage)

    if not output_bytes:
        circuit.record_failure()
        raise PipelineStageError("Background removal returned an empty image", stage=stage)

    circuit.record_success()
    logger.info(
        "background_removal_completed",
        input_size=len(image_bytes),
        output_size=len(output_bytes)
    )
    return output_bytes


# =============================================================================
# Stage 2: White Outline
# =============================================================================

def add_white_outline(image_bytes: bytes, options: OutlineOptions) -> bytes:
    """
    Draw a solid white stroke around the subject's silhouette.

    The image is fitted into an inner square and centered on a transparent
    canvas. Its alpha channel is blurred and then thresholded into a solid
    mask, the mask is painted white, and the centered image goes on top.
    """
    image = Image.open(io.BytesIO(image_bytes))
    image.load()
    image = image.convert("RGBA")

    size = (options.canvas_size, options.canvas_size)
    resized = ImageOps.contain(image, (options.inner_size, options.inner_size), Image.Resampling.LANCZOS)

    centered = Image.new("RGBA", size, (0, 0, 0, 0))
    offset = ((options.canvas_size - resized.width) // 2, (options.canvas_size - resized.height) // 2)
    centered.alpha_composite(resized, dest=offset)

    # Blur before threshold, threshold before using as a stencil
    alpha = centered.getchannel("A")
    blurred = alpha.filter(ImageFilter.GaussianBlur(options.blur_radius))
    table = [0] * options.threshold + [255] * (256 - options.threshold)
    mask = blurred.point(table)

    white = Image.new("RGBA", size, (255, 255, 255, 255))
    transparent = Image.new("RGBA", size, (0, 0, 0, 0))
    stroke = Image.composite(white, transparent, mask)

    final_image = Image.alpha_composite(stroke, centered)

    output_buffer = io.BytesIO()
    final_image.save(output_buffer, format="PNG")
    return output_buffer.getvalue()


def process_outline_stage(image_bytes: bytes, options: OutlineOptions) -> bytes:
    stage = PipelineStage.OUTLINE.value
    logger.info("outline_starting", input_size=len(image_bytes))

    try:
        with track_stage_latency(stage):
            output_bytes = add_white_outline(image_bytes, options)
    except Exception as e:
        raise PipelineStageError(f"Outline generation failed: {e}", stage=stage)

    logger.info("outline_completed", output_size=len(output_bytes))
    return output_bytes


# =============================================================================
# Stage 3: Sticker Encoding
# =============================================================================

def process_encode_stage(image_bytes: bytes, metadata: StickerMetadata) -> bytes:
    stage = PipelineStage.ENCODE.value

    try:
        with track_stage_latency(stage):
            output_bytes = encode_sticker(image_bytes, metadata)
    except Exception as e:
        raise PipelineStageError(f"Sticker encoding failed: {e}", stage=stage)

    if not output_bytes:
        raise PipelineStageError("Sticker encoding produced no output", stage=stage)

    logger.info("encode_completed", output_size=len(output_bytes), pack=metadata.pack)
    return output_bytes
