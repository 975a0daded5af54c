"""Generation worker: submit, poll, rehost, publish ready."""

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy.exc import OperationalError

from reelcast.config import Settings, get_settings
from reelcast.db.repository import VideoRepository
from reelcast.fanout.controller import FanoutController
from reelcast.models.errors import ReelcastError
from reelcast.models.jobs import GenerationJob, job_mode
from reelcast.models.video import ProviderTask, VideoStatus
from reelcast.orchestrator.cancellation import CancellationToken
from reelcast.orchestrator.poller import TaskPoller
from reelcast.orchestrator.progress import DOWNLOAD_PROGRESS, GENERATION_FLOOR, UPLOAD_PROGRESS
from reelcast.providers.base import BaseProvider
from reelcast.providers.registry import ProviderRegistry
from reelcast.storage.artifacts import ArtifactStore, MediaDownloader
from reelcast.storage.temp_store import TempFileManager

logger = logging.getLogger(__name__)

SUBMIT_PROGRESS = GENERATION_FLOOR // 2


class GenerationWorker:
    """Runs one generation job to a terminal Video status.

    Terminal errors mark the Video failed and are swallowed here; transient
    provider errors propagate so the queue can retry. A redelivered job that
    already has a provider task on record resumes polling instead of
    submitting again.
    """

    def __init__(
        self,
        videos: VideoRepository,
        providers: ProviderRegistry,
        downloader: MediaDownloader,
        store: ArtifactStore,
        fanout: FanoutController | None = None,
        temp_store: TempFileManager | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.videos = videos
        self.providers = providers
        self.downloader = downloader
        self.store = store
        self.fanout = fanout
        self.temp_store = temp_store or TempFileManager()
        self.settings = settings or get_settings()
        self.sleep = sleep

    def run(self, job: GenerationJob) -> VideoStatus:
        token = CancellationToken(self.videos, job.video_id)
        if token.is_cancelled():
            logger.info("Video %s cancelled before submission", job.video_id)
            self._notify(job, False, "cancelled")
            return VideoStatus.CANCELLED

        try:
            return self._generate(job, token)
        except ReelcastError as e:
            if e.retryable:
                raise
            self.fail(job, e)
            return VideoStatus.FAILED
        except OperationalError:
            raise
        except Exception as e:
            logger.exception("Unexpected error generating video %s", job.video_id)
            self.fail(job, e)
            return VideoStatus.FAILED

    def _generate(self, job: GenerationJob, token: CancellationToken) -> VideoStatus:
        provider = self.providers.for_job(job)
        if not self.videos.begin(job.video_id, VideoStatus.GENERATING, SUBMIT_PROGRESS, "submitting"):
            return self._skip(job)

        task_id = self._submit_or_resume(job, provider)

        poller = TaskPoller(
            provider,
            interval_seconds=self.settings.poll_interval_seconds,
            max_attempts=(
                self.settings.heygen_poll_max_attempts
                if provider.name == "heygen"
                else self.settings.poll_max_attempts
            ),
            sleep=self.sleep,
        )
        outcome = poller.wait(
            task_id,
            on_progress=lambda progress, message: self.videos.update_progress(
                job.video_id, progress, message
            ),
            cancellation=token,
        )
        if outcome.cancelled or token.is_cancelled():
            logger.info("Video %s cancelled while generating", job.video_id)
            self._notify(job, False, "cancelled")
            return VideoStatus.CANCELLED

        self.videos.update_progress(job.video_id, DOWNLOAD_PROGRESS, "downloading")
        with self.temp_store.run_dir(prefix=f"gen_{job.video_id[:8]}") as work_dir:
            local = self.downloader.download(outcome.result_url, work_dir / "result.mp4")
            self.videos.update_progress(job.video_id, UPLOAD_PROGRESS, "uploading")
            remote_url = self.store.upload(local, f"videos/{job.video_id}/{task_id}.mp4")

        if token.is_cancelled() or not self.videos.mark_ready(
            job.video_id,
            remote_url,
            thumbnail_url=outcome.thumbnail_url,
            duration_seconds=outcome.duration or float(job.duration),
        ):
            logger.info("Video %s cancelled before publishing", job.video_id)
            self.store.discard(remote_url)
            self._notify(job, False, "cancelled")
            return VideoStatus.CANCELLED

        logger.info("Video %s ready after %d polls", job.video_id, outcome.attempts)
        self._notify(job, True)
        return VideoStatus.READY

    def _submit_or_resume(self, job: GenerationJob, provider: BaseProvider) -> str:
        existing = self.videos.get(job.video_id).provider_task
        if existing and existing.provider == provider.name and existing.mode == job_mode(job):
            logger.info("Video %s resuming %s task %s", job.video_id, provider.name, existing.task_id)
            return existing.task_id

        task_id = provider.submit(job)
        self.videos.set_provider_task(
            job.video_id,
            ProviderTask(
                provider=provider.name,
                task_id=task_id,
                submitted_at=datetime.now(UTC),
                mode=job_mode(job),
            ),
        )
        logger.info("Video %s submitted to %s as task %s", job.video_id, provider.name, task_id)
        return task_id

    def _skip(self, job: GenerationJob) -> VideoStatus:
        """The video already settled (a redelivered job); report its outcome again."""
        status = self.videos.get_status(job.video_id) or VideoStatus.FAILED
        logger.info("Video %s is %s; generation skipped", job.video_id, status)
        succeeded = status in (VideoStatus.READY, VideoStatus.POSTED)
        self._notify(job, succeeded, None if succeeded else status.value)
        return status

    def fail(self, job: GenerationJob, exc: Exception) -> None:
        """Record a terminal failure on the Video and its parent batch."""
        message = exc.message if isinstance(exc, ReelcastError) else str(exc)
        logger.error("Generation failed for video %s: %s", job.video_id, message)
        self.videos.mark_failed(job.video_id, message)
        self._notify(job, False, message)

    def _notify(self, job: GenerationJob, success: bool, error: str | None = None) -> None:
        if job.batch_id is not None and self.fanout is not None:
            self.fanout.record_outcome(job.batch_id, job.item_index, success, error)
