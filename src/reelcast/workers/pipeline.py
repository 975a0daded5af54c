"""Pipeline worker: post-processes a finished video into a new artifact."""

import logging

from sqlalchemy.exc import OperationalError

from reelcast.db.repository import VideoRepository
from reelcast.fanout.controller import FanoutController
from reelcast.models.errors import PipelineStageError, ReelcastError
from reelcast.models.jobs import PipelineJob
from reelcast.models.pipeline import PipelineConfig, PipelineRun
from reelcast.models.video import VideoStatus
from reelcast.orchestrator.cancellation import CancellationToken
from reelcast.pipeline.orchestrator import PipelineOrchestrator
from reelcast.pipeline.presets import build_stages
from reelcast.storage.artifacts import ArtifactStore

logger = logging.getLogger(__name__)


class PipelineWorker:
    def __init__(
        self,
        videos: VideoRepository,
        orchestrator: PipelineOrchestrator,
        fanout: FanoutController | None = None,
        store: ArtifactStore | None = None,
    ):
        self.videos = videos
        self.orchestrator = orchestrator
        self.fanout = fanout
        self.store = store

    def run(self, job: PipelineJob) -> VideoStatus:
        token = CancellationToken(self.videos, job.video_id)
        if token.is_cancelled():
            self._notify(job, False, "cancelled")
            return VideoStatus.CANCELLED

        try:
            config = PipelineConfig(
                video_id=job.video_id,
                source_url=job.source_url,
                preset_id=job.preset_id,
                stages=build_stages(job.preset_id, job.stage_overrides),
            )
            started = self.videos.begin(
                job.video_id, VideoStatus.PROCESSING, 0, "init", from_ready=True
            )
            if not started:
                return self._skip(job)

            logger.info(
                "Running %s pipeline for video %s (%d stages)",
                job.preset_id.value,
                job.video_id,
                len(config.stages),
            )
            result = self.orchestrator.run(
                config,
                on_progress=lambda progress, message: self.videos.update_progress(
                    job.video_id, progress, message
                ),
                cancellation=token,
                on_snapshot=lambda run: self._save_run(job.video_id, run),
            )
        except ReelcastError as e:
            if e.retryable:
                raise
            self.fail(job, e)
            return VideoStatus.FAILED
        except OperationalError:
            raise
        except Exception as e:
            logger.exception("Unexpected error in pipeline for video %s", job.video_id)
            self.fail(job, e)
            return VideoStatus.FAILED

        if result.cancelled:
            logger.info("Pipeline for video %s cancelled", job.video_id)
            self._notify(job, False, "cancelled")
            return VideoStatus.CANCELLED

        if not result.success:
            self.fail(job, PipelineStageError(result.error or "stage failed", stage=result.failed_stage))
            return VideoStatus.FAILED

        if result.metadata is not None:
            self.videos.merge_metadata(job.video_id, {"media": result.metadata.model_dump()})
        ready = self.videos.mark_ready(
            job.video_id,
            result.output_artifact,
            thumbnail_url=result.thumbnail_artifact,
            duration_seconds=result.metadata.duration if result.metadata else None,
        )
        if not ready:
            self._discard(result.output_artifact, result.thumbnail_artifact)
            self._notify(job, False, "cancelled")
            return VideoStatus.CANCELLED
        self._notify(job, True)
        return VideoStatus.READY

    def _skip(self, job: PipelineJob) -> VideoStatus:
        status = self.videos.get_status(job.video_id) or VideoStatus.FAILED
        logger.info("Video %s is %s; pipeline skipped", job.video_id, status)
        succeeded = status in (VideoStatus.READY, VideoStatus.POSTED)
        self._notify(job, succeeded, None if succeeded else status.value)
        return status

    def _discard(self, *urls: str | None) -> None:
        if self.store is None:
            return
        for url in urls:
            if url:
                self.store.discard(url)

    def _save_run(self, video_id: str, run: PipelineRun) -> None:
        self.videos.merge_metadata(video_id, {"pipeline": run.model_dump(mode="json")})

    def fail(self, job: PipelineJob, exc: Exception) -> None:
        if isinstance(exc, PipelineStageError):
            message = f"Stage '{exc.stage}' failed: {exc.message}"
        elif isinstance(exc, ReelcastError):
            message = exc.message
        else:
            message = str(exc)
        logger.error("Pipeline failed for video %s: %s", job.video_id, message)
        self.videos.mark_failed(job.video_id, message)
        self._notify(job, False, message)

    def _notify(self, job: PipelineJob, success: bool, error: str | None = None) -> None:
        if job.batch_id is not None and self.fanout is not None:
            self.fanout.record_outcome(job.batch_id, job.item_index, success, error)
