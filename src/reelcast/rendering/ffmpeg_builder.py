"""FFmpeg command construction for post-processing stages."""

from pydantic import BaseModel

from reelcast.config import Settings, get_settings
from reelcast.models.pipeline import (
    INTENSITY_FACTORS,
    EffectIntensity,
    EffectName,
    Platform,
    SubtitleEntry,
    SubtitleStyle,
)


class PlatformPreset(BaseModel):
    label: str
    width: int = 1080
    height: int = 1920
    fps: int = 30
    video_bitrate: str
    audio_bitrate: str
    codec: str = "libx264"


PLATFORM_PRESETS: dict[Platform, PlatformPreset] = {
    Platform.TIKTOK: PlatformPreset(label="TikTok", video_bitrate="4M", audio_bitrate="128k"),
    Platform.INSTAGRAM_REELS: PlatformPreset(
        label="Instagram Reels", video_bitrate="3.5M", audio_bitrate="128k"
    ),
    Platform.YOUTUBE_SHORTS: PlatformPreset(
        label="YouTube Shorts", fps=60, video_bitrate="5M", audio_bitrate="192k"
    ),
    Platform.TWITTER: PlatformPreset(label="Twitter/X", video_bitrate="2.5M", audio_bitrate="128k"),
}

_SUBTITLE_Y = {
    "top": "{margin}",
    "center": "(h-text_h)/2",
    "bottom": "h-text_h-{margin}",
}


def escape_drawtext(text: str) -> str:
    """Escape a string for use inside a quoted drawtext ``text=`` value."""
    return (
        text.replace("\\", "\\\\")
        .replace("'", "’")
        .replace(":", "\\:")
        .replace("%", "\\%")
        .replace("\n", " ")
    )


class FFmpegCommandBuilder:
    """Builds ffmpeg argument lists; never runs anything itself."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def effect_filters(self, effect: EffectName, intensity: EffectIntensity) -> list[str]:
        """Video filters for one handheld-look effect at the given intensity."""
        factor = INTENSITY_FACTORS[intensity]

        if effect == EffectName.CAMERA_SHAKE:
            shake = max(1, round(5 * factor))
            return [
                f"crop=in_w-{shake * 2}:in_h-{shake * 2}"
                f":{shake}+random(1)*{shake}:{shake}+random(1)*{shake}",
                "scale=1080:1920",
            ]
        if effect == EffectName.FILM_GRAIN:
            return [f"noise=alls={round(15 * factor)}:allf=t+u"]
        if effect == EffectName.VINTAGE_FILTER:
            saturation = 1 - 0.3 * factor
            return [
                f"eq=saturation={saturation:.2f}:contrast=1.1",
                "colorbalance=rs=0.1:gs=0.05:bs=-0.1",
                f"vignette=PI/{4 + (1 - factor) * 2:.2f}",
            ]
        if effect == EffectName.PHONE_QUALITY:
            return [
                f"gblur=sigma={0.3 + 0.4 * factor:.2f}",
                f"unsharp=5:5:{0.5 * factor:.2f}:5:5:0",
                "format=yuv420p",
            ]
        if effect == EffectName.SELFIE_MODE:
            return ["hflip", f"eq=brightness={0.05 * factor:.3f}:saturation=1.1"]
        return []

    def audio_effect_filters(
        self, effects: list[EffectName], intensity: EffectIntensity
    ) -> list[str]:
        factor = INTENSITY_FACTORS[intensity]
        filters = []
        if EffectName.PHONE_QUALITY in effects:
            filters.append(f"highpass=f={100 + 100 * factor:.0f}")
            filters.append(f"lowpass=f={8000 - 2000 * factor:.0f}")
        if EffectName.VINTAGE_FILTER in effects:
            filters.append(f"volume={1 - 0.05 * factor:.3f}")
        return filters

    def build_effects_command(
        self,
        input_path: str,
        output_path: str,
        effects: list[EffectName],
        intensity: EffectIntensity = EffectIntensity.MEDIUM,
    ) -> list[str]:
        video_filters = []
        for effect in effects:
            video_filters.extend(self.effect_filters(effect, intensity))
        audio_filters = self.audio_effect_filters(effects, intensity)

        cmd = ["ffmpeg", "-y", "-i", input_path]
        if video_filters:
            cmd.extend(["-vf", ",".join(video_filters)])
        if audio_filters:
            cmd.extend(["-af", ",".join(audio_filters)])
        cmd.extend(self._encode_args())
        cmd.append(output_path)
        return cmd

    def build_trim_command(
        self,
        input_path: str,
        output_path: str,
        start_time: float = 0.0,
        end_time: float | None = None,
    ) -> list[str]:
        cmd = ["ffmpeg", "-y", "-ss", f"{start_time:.3f}", "-i", input_path]
        if end_time is not None:
            cmd.extend(["-t", f"{end_time - start_time:.3f}"])
        cmd.extend(self._encode_args())
        cmd.append(output_path)
        return cmd

    def build_subtitle_filter(self, entries: list[SubtitleEntry], style: SubtitleStyle) -> str:
        """One drawtext per entry, each enabled only inside its time window."""
        y = _SUBTITLE_Y[style.position].format(margin=style.margin_v)
        parts = []
        for entry in entries:
            parts.append(
                f"drawtext=text='{escape_drawtext(entry.text)}'"
                f":fontsize={style.font_size}:fontcolor={style.font_color}"
                f":borderw={style.outline_width}:bordercolor={style.outline_color}"
                f":x=(w-text_w)/2:y={y}"
                f":enable='between(t,{entry.start_time:.3f},{entry.end_time:.3f})'"
            )
        return ",".join(parts)

    def build_subtitles_command(
        self,
        input_path: str,
        output_path: str,
        entries: list[SubtitleEntry],
        style: SubtitleStyle | None = None,
    ) -> list[str]:
        style = style or SubtitleStyle()
        cmd = ["ffmpeg", "-y", "-i", input_path]
        if entries:
            cmd.extend(["-vf", self.build_subtitle_filter(entries, style)])
        cmd.extend(self._encode_args())
        cmd.append(output_path)
        return cmd

    def build_platform_command(self, input_path: str, output_path: str, platform: Platform) -> list[str]:
        preset = PLATFORM_PRESETS[platform]
        scale = (
            f"scale={preset.width}:{preset.height}:force_original_aspect_ratio=decrease,"
            f"pad={preset.width}:{preset.height}:(ow-iw)/2:(oh-ih)/2,"
            f"fps={preset.fps}"
        )
        return [
            "ffmpeg", "-y", "-i", input_path,
            "-vf", scale,
            "-c:v", preset.codec,
            "-b:v", preset.video_bitrate,
            "-preset", "fast",
            "-c:a", self.settings.output_audio_codec,
            "-b:a", preset.audio_bitrate,
            "-movflags", "+faststart",
            output_path,
        ]

    def build_compress_command(self, input_path: str, output_path: str, crf: int = 28) -> list[str]:
        return [
            "ffmpeg", "-y", "-i", input_path,
            "-c:v", self.settings.output_video_codec,
            "-crf", str(crf),
            "-preset", "slow",
            "-c:a", self.settings.output_audio_codec,
            "-movflags", "+faststart",
            output_path,
        ]

    def build_thumbnail_command(
        self,
        input_path: str,
        output_path: str,
        time_seconds: float = 1.0,
        width: int = 1080,
        height: int = 1920,
    ) -> list[str]:
        return [
            "ffmpeg", "-y",
            "-ss", f"{time_seconds:.3f}",
            "-i", input_path,
            "-frames:v", "1",
            "-vf", f"scale={width}:{height}:force_original_aspect_ratio=decrease",
            output_path,
        ]

    def _encode_args(self) -> list[str]:
        return [
            "-c:v", self.settings.output_video_codec,
            "-crf", str(self.settings.output_crf),
            "-preset", self.settings.output_preset,
            "-c:a", self.settings.output_audio_codec,
        ]
