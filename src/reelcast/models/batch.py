"""Batch and variant fan-out models."""

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from reelcast.models.jobs import AspectRatio, Quality
from reelcast.models.pipeline import EffectsOptions, Platform, SubtitlesOptions


class BatchType(StrEnum):
    HEYGEN = "heygen"
    KLING = "kling"
    VARIANT = "variant"


class BatchStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class BatchItemStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class BatchItemInput(BaseModel):
    """One row of a batch request (typically one CSV line)."""

    title: str | None = None
    product_id: str | None = None
    script: str | None = None
    prompt: str | None = None
    image_url: str | None = None


class HeyGenBatchConfig(BaseModel):
    avatar_id: str = Field(..., min_length=1)
    voice_id: str | None = None
    background_url: str | None = None


class KlingBatchConfig(BaseModel):
    model_version: str = "1.6"
    aspect_ratio: AspectRatio = "9:16"
    quality: Quality = "standard"
    duration: Literal[5, 10] = 5
    enable_audio: bool = False


class HeyGenBatchRequest(BaseModel):
    type: Literal["heygen"] = "heygen"
    user_id: str = Field(..., min_length=1)
    name: str | None = None
    config: HeyGenBatchConfig
    items: list[BatchItemInput] = Field(default_factory=list)


class KlingBatchRequest(BaseModel):
    type: Literal["kling"] = "kling"
    user_id: str = Field(..., min_length=1)
    name: str | None = None
    config: KlingBatchConfig = Field(default_factory=KlingBatchConfig)
    items: list[BatchItemInput] = Field(default_factory=list)


BatchRequest = Annotated[HeyGenBatchRequest | KlingBatchRequest, Field(discriminator="type")]


class VariantPresetId(StrEnum):
    TIKTOK_AB = "tiktok_ab"
    MULTI_PLATFORM = "multi_platform"
    FULL_TEST = "full_test"
    CUSTOM = "custom"


class VariantSpec(BaseModel):
    """A named post-processing recipe applied to the source video."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    effects: EffectsOptions | None = None
    subtitles: SubtitlesOptions | None = None
    platform: Platform | None = Platform.TIKTOK


class VariantRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    source_video_id: str = Field(..., min_length=1)
    preset: VariantPresetId = VariantPresetId.TIKTOK_AB
    name: str | None = None
    custom_variants: list[VariantSpec] = Field(default_factory=list)
    subtitle_texts: list[str] = Field(default_factory=list)
    duration: float | None = Field(default=None, gt=0)


class BatchJobItem(BaseModel):
    model_config = {"from_attributes": True}

    id: str
    batch_id: str
    item_index: int = Field(..., ge=0)
    status: BatchItemStatus = BatchItemStatus.PENDING
    video_id: str | None = None
    config: dict = Field(default_factory=dict)
    error_message: str | None = None
    completed_at: datetime | None = None


class BatchJob(BaseModel):
    model_config = {"from_attributes": True}

    id: str
    user_id: str
    type: BatchType
    name: str | None = None
    status: BatchStatus = BatchStatus.PENDING
    total_count: int = Field(..., ge=0)
    completed_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)
    config: dict = Field(default_factory=dict)
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (BatchStatus.COMPLETED, BatchStatus.FAILED)


class FanoutResult(BaseModel):
    batch_id: str
    item_ids: list[str] = Field(default_factory=list)
    total_count: int = Field(..., ge=0)
