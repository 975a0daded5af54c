"""Stage handlers for the post-processing pipeline.

Each handler takes the shared :class:`StageContext` plus its stage options
(as stored on the :class:`StageSpec`) and advances ``context.current`` to the
file it produced.
"""

import logging
import uuid
from collections.abc import Callable
from pathlib import Path

from reelcast.models.errors import PipelineStageError
from reelcast.models.pipeline import (
    EffectsOptions,
    MediaMetadata,
    OptimizeOptions,
    StageName,
    SubtitlesOptions,
    ThumbnailOptions,
    TrimOptions,
)
from reelcast.rendering.ffmpeg_builder import FFmpegCommandBuilder
from reelcast.rendering.runner import FFmpegRunner
from reelcast.storage.artifacts import ArtifactStore, MediaDownloader

logger = logging.getLogger(__name__)


def _ignore_progress(progress: int) -> None:
    return None


class StageContext:
    """Mutable state threaded through one pipeline run."""

    def __init__(self, video_id: str, source_url: str, work_dir: Path):
        self.video_id = video_id
        self.source_url = source_url
        self.work_dir = work_dir
        self.current: Path | None = None
        self.thumbnail: Path | None = None
        self.duration: float = 0.0
        self.metadata: MediaMetadata | None = None
        self.outputs: dict[str, str] = {}
        self.report: Callable[[int], None] = _ignore_progress

    def next_path(self, stage: StageName, ext: str = ".mp4") -> Path:
        return self.work_dir / f"{stage.value}_{uuid.uuid4().hex[:8]}{ext}"

    def require_input(self, stage: StageName) -> Path:
        if self.current is None or not self.current.exists():
            raise PipelineStageError("No input media available", stage=stage.value)
        return self.current


StageHandler = Callable[[StageContext, dict], None]


class StageRegistry:
    """Maps stage names to handlers."""

    def __init__(self, handlers: dict[StageName, StageHandler] | None = None):
        self._handlers: dict[StageName, StageHandler] = dict(handlers or {})

    def register(self, name: StageName, handler: StageHandler) -> None:
        self._handlers[name] = handler

    def get(self, name: StageName) -> StageHandler:
        handler = self._handlers.get(name)
        if handler is None:
            raise PipelineStageError(f"No handler registered for stage '{name}'", stage=str(name))
        return handler

    def __contains__(self, name: StageName) -> bool:
        return name in self._handlers


class MediaStages:
    """The ffmpeg-backed implementations of every built-in stage."""

    def __init__(
        self,
        downloader: MediaDownloader,
        store: ArtifactStore,
        builder: FFmpegCommandBuilder | None = None,
        runner: FFmpegRunner | None = None,
    ):
        self.downloader = downloader
        self.store = store
        self.builder = builder or FFmpegCommandBuilder()
        self.runner = runner or FFmpegRunner()

    def registry(self) -> StageRegistry:
        return StageRegistry(
            {
                StageName.INIT: self.init,
                StageName.EFFECTS: self.effects,
                StageName.TRIM: self.trim,
                StageName.SUBTITLES: self.subtitles,
                StageName.OPTIMIZE: self.optimize,
                StageName.THUMBNAIL: self.thumbnail,
                StageName.UPLOAD: self.upload,
            }
        )

    def init(self, ctx: StageContext, options: dict) -> None:
        """Fetch the source video into the run directory."""
        source = self.downloader.download(ctx.source_url, ctx.work_dir / "source.mp4")
        ctx.current = source
        ctx.duration = self.runner.probe(source).duration
        ctx.report(100)

    def effects(self, ctx: StageContext, options: dict) -> None:
        opts = EffectsOptions.model_validate(options)
        src = ctx.require_input(StageName.EFFECTS)
        out = ctx.next_path(StageName.EFFECTS)
        cmd = self.builder.build_effects_command(str(src), str(out), opts.effects, opts.intensity)
        ctx.current = self.runner.run(cmd, out, ctx.duration, ctx.report)

    def trim(self, ctx: StageContext, options: dict) -> None:
        opts = TrimOptions.model_validate(options)
        src = ctx.require_input(StageName.TRIM)
        if ctx.duration and opts.start_time >= ctx.duration:
            raise PipelineStageError(
                f"Trim start {opts.start_time}s is past the end of the {ctx.duration:.1f}s video",
                stage=StageName.TRIM.value,
            )
        out = ctx.next_path(StageName.TRIM)
        cmd = self.builder.build_trim_command(str(src), str(out), opts.start_time, opts.end_time)
        end = opts.end_time if opts.end_time is not None else ctx.duration
        trimmed = max(0.0, min(end, ctx.duration or end) - opts.start_time)
        ctx.current = self.runner.run(cmd, out, trimmed, ctx.report)
        ctx.duration = trimmed or ctx.duration

    def subtitles(self, ctx: StageContext, options: dict) -> None:
        opts = SubtitlesOptions.model_validate(options)
        src = ctx.require_input(StageName.SUBTITLES)
        out = ctx.next_path(StageName.SUBTITLES)
        cmd = self.builder.build_subtitles_command(str(src), str(out), opts.entries, opts.style)
        ctx.current = self.runner.run(cmd, out, ctx.duration, ctx.report)

    def optimize(self, ctx: StageContext, options: dict) -> None:
        opts = OptimizeOptions.model_validate(options)
        src = ctx.require_input(StageName.OPTIMIZE)
        out = ctx.next_path(StageName.OPTIMIZE)
        if opts.platform is not None:
            cmd = self.builder.build_platform_command(str(src), str(out), opts.platform)
        else:
            cmd = self.builder.build_compress_command(str(src), str(out))
        ctx.current = self.runner.run(cmd, out, ctx.duration, ctx.report)

    def thumbnail(self, ctx: StageContext, options: dict) -> None:
        opts = ThumbnailOptions.model_validate(options)
        src = ctx.require_input(StageName.THUMBNAIL)
        at = opts.time_seconds
        if ctx.duration and at >= ctx.duration:
            at = ctx.duration / 2
        out = ctx.next_path(StageName.THUMBNAIL, ".jpg")
        cmd = self.builder.build_thumbnail_command(str(src), str(out), at)
        ctx.thumbnail = self.runner.run(cmd, out)

    def upload(self, ctx: StageContext, options: dict) -> None:
        """Probe the final file and publish it with its thumbnail."""
        src = ctx.require_input(StageName.UPLOAD)
        ctx.metadata = self.runner.probe(src)
        prefix = f"videos/{ctx.video_id}/{uuid.uuid4().hex[:12]}"
        try:
            ctx.outputs["video_url"] = self.store.upload(src, f"{prefix}.mp4")
            ctx.report(80)
            if ctx.thumbnail is not None:
                ctx.outputs["thumbnail_url"] = self.store.upload(ctx.thumbnail, f"{prefix}.jpg")
        except Exception:
            # all outputs are published or none are
            for url in ctx.outputs.values():
                self.store.discard(url)
            ctx.outputs.clear()
            raise
        ctx.report(100)
        logger.info("Published pipeline output for video %s", ctx.video_id)
