"""
Stickers Module

Contains models for sticker jobs, usage counters and pipeline results.
"""

from src.modules.stickers.models import (
    InboundEvent,
    IntakeOutcome,
    JobDescriptor,
    JobState,
    PipelineResult,
    PipelineStage,
    UsageRecord,
)

__all__ = [
    "InboundEvent",
    "IntakeOutcome",
    "JobDescriptor",
    "JobState",
    "PipelineResult",
    "PipelineStage",
    "UsageRecord",
]
