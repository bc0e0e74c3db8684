"""
ImagePipeline - raw image bytes to sticker bytes.

Stages run in order: background removal, outline, encoding. The first two
degrade to passing their input through unchanged when they fail. Encoding
failure ends the run with a failed result and no output.
"""

from typing import Callable, List, Optional

from src.core.config import Settings
from src.core.exceptions import PipelineStageError
from src.core.logging import LogContext, get_logger
from src.core.metrics import record_stage_degraded
from src.modules.stickers.models import PipelineResult, PipelineStage
from src.pipeline.encoding import StickerMetadata
from src.pipeline.stages import (
    BackgroundRemover,
    OutlineOptions,
    process_background_removal_stage,
    process_encode_stage,
    process_outline_stage,
)

logger = get_logger(__name__)

Encoder = Callable[[bytes, StickerMetadata], bytes]


class ImagePipeline:
    """Stateless across calls; each process() call owns its buffers."""

    def __init__(
        self,
        metadata: Optional[StickerMetadata] = None,
        outline: Optional[OutlineOptions] = None,
        remover: Optional[BackgroundRemover] = None,
        encoder: Optional[Encoder] = None,
    ):
        self.metadata = metadata or StickerMetadata()
        self.outline = outline or OutlineOptions()
        self.remover = remover
        self.encoder = encoder or process_encode_stage

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "ImagePipeline":
        return cls(
            metadata=StickerMetadata.from_settings(settings),
            outline=OutlineOptions.from_settings(settings),
            **kwargs
        )

    def _degradable(
        self,
        stage: PipelineStage,
        step: Callable[[bytes], bytes],
        data: bytes,
        degraded: List[PipelineStage],
    ) -> bytes:
        with LogContext(stage=stage.value):
            try:
                return step(data)
            except PipelineStageError as e:
                logger.warning("stage_degraded", error=e.message)
                record_stage_degraded(stage.value)
                degraded.append(stage)
                return data

    def process(self, raw_bytes: bytes) -> PipelineResult:
        degraded: List[PipelineStage] = []

        data = self._degradable(
            PipelineStage.BACKGROUND_REMOVAL,
            lambda b: process_background_removal_stage(b, self.remover),
            raw_bytes,
            degraded,
        )
        data = self._degradable(
            PipelineStage.OUTLINE,
            lambda b: process_outline_stage(b, self.outline),
            data,
            degraded,
        )

        with LogContext(stage=PipelineStage.ENCODE.value):
            try:
                encoded = self.encoder(data, self.metadata)
            except Exception as e:
                logger.error("encode_failed", error=str(e), error_type=type(e).__name__)
                return PipelineResult(
                    success=False,
                    failure_stage=PipelineStage.ENCODE,
                    degraded_stages=degraded,
                )

        return PipelineResult(
            success=True,
            encoded_bytes=encoded,
            failure_stage=degraded[0] if degraded else None,
            degraded_stages=degraded,
        )
