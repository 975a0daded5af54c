"""Data models for Reelcast."""

from reelcast.models.batch import (
    BatchItemStatus,
    BatchJob,
    BatchJobItem,
    BatchRequest,
    BatchStatus,
    BatchType,
    FanoutResult,
    VariantPresetId,
    VariantRequest,
    VariantSpec,
)
from reelcast.models.errors import (
    ErrorResponse,
    GenerationTimedOut,
    NotFoundError,
    PipelineStageError,
    ProviderRejected,
    ProviderTaskFailed,
    ProviderUnavailable,
    ReelcastError,
    RenderingError,
    ValidationError,
)
from reelcast.models.jobs import FanoutJob, GenerationJob, PipelineJob, parse_generation_job
from reelcast.models.pipeline import (
    PipelineConfig,
    PipelineOverrides,
    PipelinePresetId,
    PipelineResult,
    StageName,
    StageSpec,
)
from reelcast.models.provider import PollOutcome, ProviderPhase, ProviderStatus
from reelcast.models.video import GenerationMode, GenerationType, ProviderTask, Video, VideoStatus

__all__ = [
    "BatchItemStatus",
    "BatchJob",
    "BatchJobItem",
    "BatchRequest",
    "BatchStatus",
    "BatchType",
    "ErrorResponse",
    "FanoutJob",
    "FanoutResult",
    "GenerationJob",
    "GenerationMode",
    "GenerationTimedOut",
    "GenerationType",
    "NotFoundError",
    "PipelineConfig",
    "PipelineJob",
    "PipelineOverrides",
    "PipelinePresetId",
    "PipelineResult",
    "PipelineStageError",
    "PollOutcome",
    "ProviderPhase",
    "ProviderRejected",
    "ProviderStatus",
    "ProviderTask",
    "ProviderTaskFailed",
    "ProviderUnavailable",
    "ReelcastError",
    "RenderingError",
    "StageName",
    "StageSpec",
    "ValidationError",
    "VariantPresetId",
    "VariantRequest",
    "VariantSpec",
    "Video",
    "VideoStatus",
    "parse_generation_job",
]
