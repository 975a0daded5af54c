"""Process-wide wiring of repositories, adapters, queues and workers."""

import logging
import time
from collections.abc import Callable

from sqlalchemy.orm import Session, sessionmaker

from reelcast.config import Settings, get_settings
from reelcast.db.engine import create_db_engine, create_session_factory
from reelcast.db.repository import BatchRepository, VideoRepository
from reelcast.fanout.controller import FanoutController
from reelcast.pipeline.orchestrator import PipelineOrchestrator
from reelcast.pipeline.stages import MediaStages, StageRegistry
from reelcast.providers.registry import ProviderRegistry
from reelcast.queue.registry import QueueRegistry
from reelcast.rendering.ffmpeg_builder import FFmpegCommandBuilder
from reelcast.storage.artifacts import ArtifactStore, MediaDownloader
from reelcast.storage.temp_store import TempFileManager
from reelcast.workers.generation import GenerationWorker
from reelcast.workers.pipeline import PipelineWorker

logger = logging.getLogger(__name__)


class Services:
    """Everything a worker or request handler needs, built once per process."""

    def __init__(
        self,
        settings: Settings,
        session_factory: sessionmaker[Session],
        queues: QueueRegistry,
        providers: ProviderRegistry | None = None,
        store: ArtifactStore | None = None,
        temp_store: TempFileManager | None = None,
        downloader: MediaDownloader | None = None,
        stages: StageRegistry | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.queues = queues
        self.videos = VideoRepository(session_factory)
        self.batches = BatchRepository(session_factory)
        self.fanout = FanoutController(self.batches, self.videos, queues, settings)
        self.providers = providers or ProviderRegistry.from_settings(settings)
        self.store = store or ArtifactStore(settings.artifact_dir, settings.artifact_base_url)
        self.temp_store = temp_store or TempFileManager(settings.temp_dir)
        self.downloader = downloader or MediaDownloader(self.store, settings)
        self.stages = stages or MediaStages(
            self.downloader, self.store, FFmpegCommandBuilder(settings)
        ).registry()
        self.sleep = sleep

    def generation_worker(self) -> GenerationWorker:
        return GenerationWorker(
            self.videos,
            self.providers,
            self.downloader,
            self.store,
            fanout=self.fanout,
            temp_store=self.temp_store,
            settings=self.settings,
            sleep=self.sleep,
        )

    def pipeline_worker(self) -> PipelineWorker:
        return PipelineWorker(
            self.videos,
            PipelineOrchestrator(self.stages, self.temp_store),
            fanout=self.fanout,
            store=self.store,
        )


def build_services(settings: Settings | None = None) -> Services:
    settings = settings or get_settings()
    engine = create_db_engine(settings.database_url)
    logger.info("Using database %s", engine.url.render_as_string(hide_password=True))
    return Services(settings, create_session_factory(engine), QueueRegistry(settings))
