"""Video record models."""

from datetime import datetime
from enum import StrEnum

from pydantic import AliasChoices, BaseModel, Field


class VideoStatus(StrEnum):
    """Lifecycle of a Video as shown to the merchant."""

    DRAFT = "draft"
    GENERATING = "generating"
    PROCESSING = "processing"
    READY = "ready"
    POSTED = "posted"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (VideoStatus.GENERATING, VideoStatus.PROCESSING)
CANCELLABLE_STATUSES = (VideoStatus.DRAFT, VideoStatus.GENERATING, VideoStatus.PROCESSING)
TERMINAL_STATUSES = (VideoStatus.READY, VideoStatus.POSTED, VideoStatus.FAILED, VideoStatus.CANCELLED)


class GenerationType(StrEnum):
    """Which provider family produced the video."""

    KLING = "kling"
    HEYGEN = "heygen"
    DEMO = "demo"
    VARIANT = "variant"


class GenerationMode(StrEnum):
    """Provider generation modes."""

    IMAGE_TO_VIDEO = "image-to-video"
    TEXT_TO_VIDEO = "text-to-video"
    ELEMENTS = "elements"
    VIDEO_EDIT = "video-edit"
    STYLE_TRANSFER = "style-transfer"
    INPAINT = "inpaint"
    BACKGROUND = "background"
    MOTION_REF = "motion-ref"
    CAMERA_CONTROL = "camera-control"
    LIP_SYNC = "lip-sync"
    EXTEND = "extend"
    AVATAR = "avatar"


class ProviderTask(BaseModel):
    """Handle to a remote generation task, stored on the Video."""

    provider: str = Field(..., min_length=1)
    task_id: str = Field(..., min_length=1)
    submitted_at: datetime
    mode: GenerationMode


class Video(BaseModel):
    """Read model of a persisted Video."""

    model_config = {"from_attributes": True}

    id: str
    user_id: str
    product_id: str | None = None
    title: str | None = None
    generation_type: GenerationType = GenerationType.KLING
    status: VideoStatus = VideoStatus.DRAFT
    progress: int = Field(default=0, ge=0, le=100)
    progress_message: str = ""
    error_message: str | None = None
    remote_url: str | None = None
    thumbnail_url: str | None = None
    duration_seconds: float | None = None
    generation_config: dict = Field(default_factory=dict)
    metadata: dict = Field(default_factory=dict, validation_alias=AliasChoices("metadata_", "metadata"))
    batch_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def provider_task(self) -> ProviderTask | None:
        raw = self.generation_config.get("provider_task")
        return ProviderTask.model_validate(raw) if raw else None
