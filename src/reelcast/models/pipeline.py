"""Post-processing pipeline models."""

from enum import StrEnum

from pydantic import BaseModel, Field, model_validator


class StageName(StrEnum):
    """Stages a post-processing pipeline can be composed of."""

    INIT = "init"
    EFFECTS = "effects"
    TRIM = "trim"
    SUBTITLES = "subtitles"
    OPTIMIZE = "optimize"
    THUMBNAIL = "thumbnail"
    UPLOAD = "upload"


class StageStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class EffectName(StrEnum):
    """Handheld-look filters applied to generated footage."""

    CAMERA_SHAKE = "camera_shake"
    FILM_GRAIN = "film_grain"
    VINTAGE_FILTER = "vintage_filter"
    PHONE_QUALITY = "phone_quality"
    SELFIE_MODE = "selfie_mode"


class EffectIntensity(StrEnum):
    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"


INTENSITY_FACTORS: dict[EffectIntensity, float] = {
    EffectIntensity.LIGHT: 0.3,
    EffectIntensity.MEDIUM: 0.6,
    EffectIntensity.HEAVY: 1.0,
}


class Platform(StrEnum):
    TIKTOK = "tiktok"
    INSTAGRAM_REELS = "instagram_reels"
    YOUTUBE_SHORTS = "youtube_shorts"
    TWITTER = "twitter"


class PipelinePresetId(StrEnum):
    TIKTOK_UGC = "tiktok_ugc"
    REVIEW = "review"
    SIMPLE = "simple"
    CUSTOM = "custom"


class EffectsOptions(BaseModel):
    enabled: bool = True
    effects: list[EffectName] = Field(default_factory=list)
    intensity: EffectIntensity = EffectIntensity.MEDIUM


class TrimOptions(BaseModel):
    enabled: bool = True
    start_time: float = Field(default=0.0, ge=0)
    end_time: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_window(self) -> "TrimOptions":
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError(
                f"end_time ({self.end_time}) must be greater than start_time ({self.start_time})"
            )
        return self


class SubtitleEntry(BaseModel):
    start_time: float = Field(..., ge=0)
    end_time: float = Field(..., gt=0)
    text: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_start_before_end(self) -> "SubtitleEntry":
        if self.start_time >= self.end_time:
            raise ValueError(f"start_time ({self.start_time}) must be < end_time ({self.end_time})")
        return self


class SubtitleStyle(BaseModel):
    font_size: int = Field(default=24, gt=0)
    font_color: str = "white"
    outline_color: str = "black"
    outline_width: int = Field(default=2, ge=0)
    position: str = Field(default="bottom", pattern="^(top|center|bottom)$")
    margin_v: int = Field(default=30, ge=0)


class SubtitlesOptions(BaseModel):
    enabled: bool = True
    entries: list[SubtitleEntry] = Field(default_factory=list)
    style: SubtitleStyle = Field(default_factory=SubtitleStyle)


class OptimizeOptions(BaseModel):
    """Platform re-encode, or a plain size-oriented compress when no platform is set."""

    enabled: bool = True
    platform: Platform | None = Platform.TIKTOK


class ThumbnailOptions(BaseModel):
    enabled: bool = True
    time_seconds: float = Field(default=1.0, ge=0)


class PipelineOverrides(BaseModel):
    """Per-request stage configuration, merged over a preset."""

    effects: EffectsOptions | None = None
    trim: TrimOptions | None = None
    subtitles: SubtitlesOptions | None = None
    optimize: OptimizeOptions | None = None
    thumbnail: ThumbnailOptions | None = None


class StageSpec(BaseModel):
    """One entry of the ordered stage list the orchestrator executes."""

    name: StageName
    options: dict = Field(default_factory=dict)
    weight: float = Field(default=1.0, gt=0)


class StageRecord(BaseModel):
    name: StageName
    status: StageStatus = StageStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    duration_ms: int = Field(default=0, ge=0)
    error: str | None = None


class PipelineConfig(BaseModel):
    video_id: str = Field(..., min_length=1)
    source_url: str = Field(..., min_length=1)
    preset_id: PipelinePresetId = PipelinePresetId.SIMPLE
    stages: list[StageSpec] = Field(..., min_length=1)


class MediaMetadata(BaseModel):
    """ffprobe summary of a produced file."""

    duration: float = Field(default=0.0, ge=0)
    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)
    file_size: int = Field(default=0, ge=0)
    codec: str = ""


class PipelineRun(BaseModel):
    """Progress snapshot persisted into the Video's metadata."""

    stages: list[StageRecord] = Field(default_factory=list)
    current_stage_index: int = Field(default=0, ge=0)
    outputs: dict[str, str] = Field(default_factory=dict)


class PipelineResult(BaseModel):
    success: bool
    cancelled: bool = False
    output_artifact: str | None = None
    thumbnail_artifact: str | None = None
    stage_history: list[StageRecord] = Field(default_factory=list)
    failed_stage: StageName | None = None
    error: str | None = None
    metadata: MediaMetadata | None = None
