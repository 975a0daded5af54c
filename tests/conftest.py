"""Shared test fixtures: in-memory database, fake providers, fake stages."""

import tempfile
from collections import defaultdict
from pathlib import Path

import pytest

from reelcast.config import Settings
from reelcast.db.engine import create_db_engine, create_session_factory
from reelcast.db.repository import BatchRepository, VideoRepository
from reelcast.models.errors import RenderingError
from reelcast.models.pipeline import MediaMetadata, StageName
from reelcast.models.provider import ProviderPhase, ProviderStatus
from reelcast.models.video import GenerationMode
from reelcast.pipeline.stages import StageContext, StageRegistry
from reelcast.providers.base import BaseProvider
from reelcast.providers.registry import ProviderRegistry
from reelcast.queue.registry import QueueRegistry
from reelcast.services import Services
from reelcast.storage.artifacts import ArtifactStore
from reelcast.storage.temp_store import TempFileManager


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def settings(tmp_dir):
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        temp_dir=tmp_dir / "temp",
        artifact_dir=tmp_dir / "artifacts",
        artifact_base_url="http://media.test",
        poll_interval_seconds=10.0,
        poll_max_attempts=60,
    )


@pytest.fixture
def session_factory():
    engine = create_db_engine("sqlite://")
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def videos(session_factory):
    return VideoRepository(session_factory)


@pytest.fixture
def batches(session_factory):
    return BatchRepository(session_factory)


@pytest.fixture
def store(settings):
    return ArtifactStore(settings.artifact_dir, settings.artifact_base_url)


@pytest.fixture
def temp_store(settings):
    return TempFileManager(settings.temp_dir)


@pytest.fixture
def provider_result(tmp_dir):
    """A file standing in for the provider's rendered video."""
    path = tmp_dir / "provider_result.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42 fake video")
    return path


def queued(progress=0.0):
    return ProviderStatus(phase=ProviderPhase.QUEUED, progress=progress)


def running(progress):
    return ProviderStatus(phase=ProviderPhase.RUNNING, progress=progress)


def succeeded(url, duration=5.0):
    return ProviderStatus(phase=ProviderPhase.SUCCEEDED, progress=100.0, result_url=url, duration=duration)


class FakeProvider(BaseProvider):
    """Replays a scripted list of poll observations for every task.

    Jobs whose prompt is in ``fail_prompts`` report a provider-side failure.
    ``on_submit`` runs after each submission (used to race a cancellation).
    """

    supported_modes = frozenset(GenerationMode)

    def __init__(self, script, name="kling", fail_prompts=(), on_submit=None):
        super().__init__("http://provider.test", api_key="test-key")
        self.name = name
        self.script = list(script)
        self.fail_prompts = set(fail_prompts)
        self.on_submit = on_submit
        self.submitted = []
        self.polls = defaultdict(int)
        self._failing = set()

    def submit(self, job) -> str:
        self.submitted.append(job)
        task_id = f"{self.name}-task-{len(self.submitted)}"
        if getattr(job, "prompt", None) in self.fail_prompts:
            self._failing.add(task_id)
        if self.on_submit:
            self.on_submit(job)
        return task_id

    def poll(self, task_id: str) -> ProviderStatus:
        if task_id in self._failing:
            return ProviderStatus(phase=ProviderPhase.FAILED, error="content policy violation")
        index = self.polls[task_id]
        self.polls[task_id] += 1
        item = self.script[min(index, len(self.script) - 1)]
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def total_polls(self) -> int:
        return sum(self.polls.values())


@pytest.fixture
def fake_provider(provider_result):
    return FakeProvider([queued(0), running(40), succeeded(provider_result.as_uri())])


@pytest.fixture
def provider_registry(fake_provider, provider_result):
    heygen = FakeProvider([queued(0), running(50), succeeded(provider_result.as_uri())], name="heygen")
    return ProviderRegistry({"kling": fake_provider, "heygen": heygen}, default="kling")


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sleep():
    return RecordingSleep()


class RecordingQueues(QueueRegistry):
    """Queue registry that records jobs instead of talking to a broker."""

    def __init__(self, settings, fail_queues=()):
        super().__init__(settings)
        self.sent = []
        self.fail_queues = set(fail_queues)

    def enqueue(self, queue, payload) -> str:
        if queue in self.fail_queues:
            raise ConnectionError(f"broker unavailable for {queue}")
        self.sent.append((queue, payload))
        return f"celery-{len(self.sent)}"

    def jobs(self, queue):
        return [payload for q, payload in self.sent if q == queue]


@pytest.fixture
def queues(settings):
    return RecordingQueues(settings)


def make_fake_stages(store: ArtifactStore, fail_on: StageName | None = None) -> StageRegistry:
    """Stage handlers that shuffle bytes around instead of running ffmpeg."""

    def init(ctx: StageContext, options: dict) -> None:
        source = ctx.work_dir / "source.mp4"
        source.write_bytes(b"source video")
        ctx.current = source
        ctx.duration = 10.0
        ctx.report(100)

    def transform(name: StageName):
        def handler(ctx: StageContext, options: dict) -> None:
            if name == fail_on:
                raise RenderingError("FFmpeg exited with code 1")
            data = ctx.current.read_bytes() if ctx.current else b""
            out = ctx.next_path(name)
            out.write_bytes(data + f"|{name.value}".encode())
            ctx.current = out
            ctx.report(50)

        return handler

    def thumbnail(ctx: StageContext, options: dict) -> None:
        out = ctx.next_path(StageName.THUMBNAIL, ".jpg")
        out.write_bytes(b"jpeg")
        ctx.thumbnail = out

    def upload(ctx: StageContext, options: dict) -> None:
        ctx.metadata = MediaMetadata(
            duration=ctx.duration, width=1080, height=1920, file_size=ctx.current.stat().st_size, codec="h264"
        )
        ctx.outputs["video_url"] = store.upload(ctx.current, f"videos/{ctx.video_id}/final.mp4")
        if ctx.thumbnail:
            ctx.outputs["thumbnail_url"] = store.upload(ctx.thumbnail, f"videos/{ctx.video_id}/final.jpg")

    handlers = {
        StageName.INIT: init,
        StageName.THUMBNAIL: thumbnail,
        StageName.UPLOAD: upload,
    }
    for name in (StageName.EFFECTS, StageName.TRIM, StageName.SUBTITLES, StageName.OPTIMIZE):
        handlers[name] = transform(name)
    if fail_on is not None:
        handlers[fail_on] = transform(fail_on)
    return StageRegistry(handlers)


@pytest.fixture
def services(settings, session_factory, queues, provider_registry, store, temp_store, sleep):
    return Services(
        settings,
        session_factory,
        queues,
        providers=provider_registry,
        store=store,
        temp_store=temp_store,
        stages=make_fake_stages(store),
        sleep=sleep,
    )
