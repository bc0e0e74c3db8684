"""
Sticker Job Models

In-memory data model for the sticker pipeline:
- JobDescriptor: immutable unit of work handed to the queue
- UsageRecord: per-identity daily counter
- PipelineResult: outcome of one ImagePipeline run
- InboundEvent: upstream messaging event
"""

from enum import Enum
from datetime import date
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobState(str, Enum):
    """Job lifecycle states."""
    SUBMITTED = "submitted"
    DEQUEUED = "dequeued"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PipelineStage(str, Enum):
    """Pipeline stages."""
    BACKGROUND_REMOVAL = "background_removal"
    OUTLINE = "outline"
    ENCODE = "encode"


class IntakeOutcome(str, Enum):
    """What IntakeController did with an inbound event."""
    IGNORED = "ignored"
    REJECTED_LIMIT = "rejected_limit"
    REJECTED_SIZE = "rejected_size"
    QUEUED = "queued"


class JobDescriptor(BaseModel):
    """Unit of work scheduled on the job queue. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    identity: str = Field(..., min_length=1)
    staging_ref: str = Field(..., min_length=1)
    correlation_id: str = Field(..., min_length=1)


@dataclass
class UsageRecord:
    """Daily usage counter for one identity. Mutated only by RateLimiter."""
    identity: str
    date: date
    count: int = 0


class PipelineResult(BaseModel):
    """Outcome of a single ImagePipeline.process call."""
    success: bool
    encoded_bytes: Optional[bytes] = None
    failure_stage: Optional[PipelineStage] = None
    degraded_stages: List[PipelineStage] = Field(default_factory=list)


class InboundEvent(BaseModel):
    """Event delivered by the messaging transport."""
    identity: str = Field(..., min_length=1)
    has_media: bool = False
    media_type: Optional[str] = Field(None, description="MIME type, e.g. image/png")
    media_base64: Optional[str] = Field(None, description="Base64 encoded media bytes")
    media_ref: Optional[str] = Field(None, description="URL the transport serves the media from")
    event_id: str = Field(..., min_length=1)


class IntakeResponse(BaseModel):
    """Response from the events endpoint."""
    event_id: str
    outcome: IntakeOutcome
