"""Queue job payloads.

Generation jobs are a tagged union keyed on ``mode``. Each mode carries only
the fields it needs and is validated when the payload is constructed, so a
worker never sees a half-formed request.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter, model_validator
from pydantic import ValidationError as PydanticValidationError

from reelcast.models.errors import ValidationError
from reelcast.models.pipeline import PipelineOverrides, PipelinePresetId
from reelcast.models.video import GenerationMode

DEFAULT_NEGATIVE_PROMPT = "blurry, low quality, distorted"
MAX_ELEMENT_IMAGES = 7

AspectRatio = Literal["16:9", "9:16", "1:1"]
Quality = Literal["standard", "pro"]


class _JobBase(BaseModel):
    video_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    product_id: str | None = None
    duration: Literal[5, 10] = 5
    provider: str | None = Field(default=None, description="Adapter name; registry default if unset")
    batch_id: str | None = None
    item_index: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def validate_batch_ref(self):
        if (self.batch_id is None) != (self.item_index is None):
            raise ValueError("batch_id and item_index must be given together")
        return self


class _RenderOptions(BaseModel):
    negative_prompt: str = DEFAULT_NEGATIVE_PROMPT
    aspect_ratio: AspectRatio = "9:16"
    quality: Quality = "standard"
    model_version: str | None = None
    cfg_scale: float | None = Field(default=None, ge=0, le=1)
    enable_audio: bool = False


class ImageToVideoJob(_JobBase, _RenderOptions):
    mode: Literal["image-to-video"] = "image-to-video"
    image_url: str = Field(..., min_length=1)
    image_tail_url: str | None = None
    prompt: str = ""


class TextToVideoJob(_JobBase, _RenderOptions):
    mode: Literal["text-to-video"] = "text-to-video"
    prompt: str = Field(..., min_length=1)


class ElementsJob(_JobBase, _RenderOptions):
    mode: Literal["elements"] = "elements"
    prompt: str = Field(..., min_length=1)
    element_images: list[str] = Field(..., min_length=1, max_length=MAX_ELEMENT_IMAGES)


class VideoEditJob(_JobBase):
    mode: Literal["video-edit"] = "video-edit"
    origin_task_id: str = Field(..., min_length=1)
    edit_prompt: str = Field(..., min_length=1)
    edit_strength: float = Field(default=0.5, ge=0, le=1)


class StyleTransferJob(_JobBase):
    mode: Literal["style-transfer"] = "style-transfer"
    origin_task_id: str = Field(..., min_length=1)
    style_preset_id: str | None = None
    style_image_url: str | None = None
    prompt: str | None = None
    edit_strength: float = Field(default=0.5, ge=0, le=1)

    @model_validator(mode="after")
    def validate_style_source(self) -> "StyleTransferJob":
        if not (self.style_preset_id or self.style_image_url or self.prompt):
            raise ValueError("style-transfer needs a style preset, style image or prompt")
        return self


class InpaintJob(_JobBase):
    mode: Literal["inpaint"] = "inpaint"
    origin_task_id: str = Field(..., min_length=1)
    remove_prompt: str = Field(..., min_length=1)


class BackgroundJob(_JobBase):
    mode: Literal["background"] = "background"
    origin_task_id: str = Field(..., min_length=1)
    background_preset_id: str | None = None
    background_prompt: str | None = None
    background_image_url: str | None = None

    @model_validator(mode="after")
    def validate_background_source(self) -> "BackgroundJob":
        if not (self.background_preset_id or self.background_prompt or self.background_image_url):
            raise ValueError("background needs a preset, prompt or image")
        return self


class MotionRefJob(_JobBase, _RenderOptions):
    mode: Literal["motion-ref"] = "motion-ref"
    image_url: str = Field(..., min_length=1)
    prompt: str = ""
    motion_preset_id: str | None = None
    motion_video_url: str | None = None
    motion_strength: float = Field(default=0.5, ge=0, le=1)

    @model_validator(mode="after")
    def validate_motion_source(self) -> "MotionRefJob":
        if not (self.motion_preset_id or self.motion_video_url):
            raise ValueError("motion-ref needs a motion preset or reference video")
        return self


class CameraMove(BaseModel):
    type: Literal["pan", "tilt", "zoom", "roll", "truck", "dolly"]
    direction: Literal["left", "right", "up", "down", "in", "out", "cw", "ccw"] | None = None
    speed: Literal["slow", "medium", "fast"] = "medium"
    amount: float | None = Field(default=None, ge=-10, le=10)


class CameraControlJob(_JobBase, _RenderOptions):
    mode: Literal["camera-control"] = "camera-control"
    image_url: str = Field(..., min_length=1)
    prompt: str = ""
    camera_preset_id: str | None = None
    camera_reference_video_url: str | None = None
    camera_controls: list[CameraMove] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_camera_source(self) -> "CameraControlJob":
        if not (self.camera_preset_id or self.camera_reference_video_url or self.camera_controls):
            raise ValueError("camera-control needs a preset, reference video or explicit moves")
        return self


class LipSyncJob(_JobBase):
    mode: Literal["lip-sync"] = "lip-sync"
    origin_task_id: str = Field(..., min_length=1)
    tts_text: str | None = None
    tts_voice: str | None = None
    audio_url: str | None = None

    @model_validator(mode="after")
    def validate_speech_source(self) -> "LipSyncJob":
        if not (self.tts_text or self.audio_url):
            raise ValueError("lip-sync needs tts_text or audio_url")
        return self


class ExtendJob(_JobBase):
    mode: Literal["extend"] = "extend"
    origin_task_id: str = Field(..., min_length=1)
    prompt: str = ""


class AvatarJob(_JobBase):
    mode: Literal["avatar"] = "avatar"
    avatar_id: str = Field(..., min_length=1)
    script: str = Field(..., min_length=1, max_length=5000)
    voice_id: str | None = None
    background_url: str | None = None
    background_color: str = "#000000"


GenerationJob = Annotated[
    ImageToVideoJob
    | TextToVideoJob
    | ElementsJob
    | VideoEditJob
    | StyleTransferJob
    | InpaintJob
    | BackgroundJob
    | MotionRefJob
    | CameraControlJob
    | LipSyncJob
    | ExtendJob
    | AvatarJob,
    Field(discriminator="mode"),
]

_generation_job_adapter: TypeAdapter[GenerationJob] = TypeAdapter(GenerationJob)


def parse_generation_job(data: dict) -> GenerationJob:
    """Build the mode-specific job, mapping schema errors onto ValidationError."""
    try:
        return _generation_job_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid generation job: {e.error_count()} error(s)",
            details={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
        )


def job_mode(job: GenerationJob) -> GenerationMode:
    return GenerationMode(job.mode)


class PipelineJob(BaseModel):
    video_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    source_url: str = Field(..., min_length=1)
    preset_id: PipelinePresetId = PipelinePresetId.SIMPLE
    stage_overrides: PipelineOverrides | None = None
    batch_id: str | None = None
    item_index: int | None = Field(default=None, ge=0)


class FanoutJob(BaseModel):
    """Expands a persisted batch or variant set into child jobs."""

    batch_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
