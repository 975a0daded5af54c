"""Tests for batch and variant fan-out."""

import pytest
from sqlalchemy import select

from reelcast.db.models import BatchJobRow
from reelcast.fanout.controller import FanoutController
from reelcast.fanout.variants import resolve_variants, split_subtitles, variant_overrides
from reelcast.models.batch import (
    BatchItemInput,
    BatchItemStatus,
    BatchStatus,
    HeyGenBatchConfig,
    HeyGenBatchRequest,
    KlingBatchConfig,
    KlingBatchRequest,
    VariantPresetId,
    VariantRequest,
    VariantSpec,
)
from reelcast.models.errors import ValidationError
from reelcast.models.jobs import AvatarJob, ImageToVideoJob, PipelineJob, TextToVideoJob
from reelcast.models.pipeline import PipelinePresetId, Platform, StageName
from reelcast.models.video import GenerationType, VideoStatus
from reelcast.pipeline.presets import build_stages
from reelcast.queue.registry import (
    AVATAR_QUEUE,
    BATCH_QUEUE,
    GENERATION_QUEUE,
    PIPELINE_QUEUE,
    VARIANTS_QUEUE,
)
from tests.conftest import RecordingQueues


@pytest.fixture
def fanout(batches, videos, queues, settings):
    return FanoutController(batches, videos, queues, settings)


def kling_request(prompts, **config):
    return KlingBatchRequest(
        user_id="u1",
        name="spring launch",
        config=KlingBatchConfig(**config),
        items=[BatchItemInput(title=f"Ad {i}", prompt=p) for i, p in enumerate(prompts)],
    )


@pytest.fixture
def source_video(videos):
    video = videos.create(user_id="u1", generation_type="kling", title="Serum", product_id="p1")
    videos.begin(video.id, VideoStatus.GENERATING, 5, "submitting")
    videos.mark_ready(video.id, "http://media.test/videos/src.mp4", duration_seconds=12.0)
    return videos.get(video.id)


class TestCreateBatch:
    def test_persists_and_enqueues_expansion(self, fanout, batches, queues):
        result = fanout.create_batch(kling_request(["a", "b", "c"]))
        assert result.total_count == 3
        assert len(result.item_ids) == 3
        assert batches.get(result.batch_id).status == BatchStatus.PENDING
        (job,) = queues.jobs(BATCH_QUEUE)
        assert job.batch_id == result.batch_id

    def test_empty_batch(self, fanout, queues):
        with pytest.raises(ValidationError, match="between 1 and 100"):
            fanout.create_batch(kling_request([]))
        assert queues.sent == []

    def test_too_many_items(self, batches, videos, queues, settings):
        small = FanoutController(batches, videos, queues, settings.model_copy(update={"max_batch_items": 2}))
        with pytest.raises(ValidationError, match="got 3"):
            small.create_batch(kling_request(["a", "b", "c"]))

    def test_invalid_items_are_reported_by_index(self, fanout, queues):
        request = HeyGenBatchRequest(
            user_id="u1",
            config=HeyGenBatchConfig(avatar_id="anna"),
            items=[
                BatchItemInput(script="Hi there"),
                BatchItemInput(script="x" * 5001),
                BatchItemInput(script="   "),
            ],
        )
        with pytest.raises(ValidationError) as exc_info:
            fanout.create_batch(request)
        assert exc_info.value.details == {
            "items": {"1": "script exceeds 5000 characters", "2": "script is required"}
        }
        assert queues.sent == []

    def test_kling_item_needs_prompt_or_image(self, fanout):
        request = KlingBatchRequest(user_id="u1", items=[BatchItemInput(title="empty")])
        with pytest.raises(ValidationError) as exc_info:
            fanout.create_batch(request)
        assert exc_info.value.details["items"] == {"0": "prompt or image_url is required"}


class TestExpand:
    def test_creates_and_enqueues_children(self, fanout, batches, videos, queues):
        result = fanout.create_batch(kling_request(["a", "b", "c"], quality="pro", duration=10))
        video_ids = fanout.expand(result.batch_id)

        assert len(video_ids) == 3
        assert batches.get(result.batch_id).status == BatchStatus.PROCESSING
        jobs = queues.jobs(GENERATION_QUEUE)
        assert [j.item_index for j in jobs] == [0, 1, 2]
        assert all(isinstance(j, TextToVideoJob) for j in jobs)
        assert jobs[0].quality == "pro"
        assert jobs[0].duration == 10
        assert jobs[1].batch_id == result.batch_id

        items = batches.list_items(result.batch_id)
        assert [i.video_id for i in items] == video_ids
        assert all(i.status == BatchItemStatus.PROCESSING for i in items)
        child = videos.get(video_ids[0])
        assert child.status == VideoStatus.DRAFT
        assert child.progress_message == "queued"
        assert child.title == "Ad 0"
        assert child.batch_id == result.batch_id

    def test_redelivery_does_not_duplicate(self, fanout, queues):
        result = fanout.create_batch(kling_request(["a", "b"]))
        fanout.expand(result.batch_id)
        assert fanout.expand(result.batch_id) == []
        assert len(queues.jobs(GENERATION_QUEUE)) == 2

    def test_image_items_become_image_to_video(self, fanout, queues):
        request = KlingBatchRequest(
            user_id="u1", items=[BatchItemInput(image_url="https://img.test/a.png", prompt="spin it")]
        )
        fanout.expand(fanout.create_batch(request).batch_id)
        (job,) = queues.jobs(GENERATION_QUEUE)
        assert isinstance(job, ImageToVideoJob)
        assert job.prompt == "spin it"

    def test_heygen_children_go_to_avatar_queue(self, fanout, videos, queues):
        request = HeyGenBatchRequest(
            user_id="u1",
            config=HeyGenBatchConfig(avatar_id="anna", voice_id="v1"),
            items=[BatchItemInput(script="Hello", product_id="p9")],
        )
        (video_id,) = fanout.expand(fanout.create_batch(request).batch_id)
        (job,) = queues.jobs(AVATAR_QUEUE)
        assert isinstance(job, AvatarJob)
        assert (job.avatar_id, job.voice_id, job.script, job.product_id) == ("anna", "v1", "Hello", "p9")
        assert videos.get(video_id).generation_type == GenerationType.HEYGEN

    def test_terminal_batch_is_not_expanded(self, fanout, batches, queues):
        result = fanout.create_batch(kling_request(["a"]))
        batches.record_outcome(result.batch_id, 0, success=False, error="gone")
        assert fanout.expand(result.batch_id) == []
        assert queues.jobs(GENERATION_QUEUE) == []

    def test_enqueue_failure_fails_the_child(self, batches, videos, settings):
        queues = RecordingQueues(settings, fail_queues={GENERATION_QUEUE})
        fanout = FanoutController(batches, videos, queues, settings)
        result = fanout.create_batch(kling_request(["a", "b"]))
        assert fanout.expand(result.batch_id) == []

        batch = batches.get(result.batch_id)
        assert batch.failed_count == 2
        assert batch.status == BatchStatus.FAILED
        for item in batches.list_items(result.batch_id):
            assert videos.get(item.video_id).status == VideoStatus.FAILED
            assert "broker unavailable" in item.error_message

    @pytest.mark.parametrize("queue", [BATCH_QUEUE, VARIANTS_QUEUE])
    def test_expansion_enqueue_failure_settles_the_parent(
        self, session_factory, batches, videos, settings, source_video, queue
    ):
        queues = RecordingQueues(settings, fail_queues={queue})
        fanout = FanoutController(batches, videos, queues, settings)
        with pytest.raises(ConnectionError):
            if queue == BATCH_QUEUE:
                fanout.create_batch(kling_request(["a", "b"]))
            else:
                fanout.create_variants(VariantRequest(user_id="u1", source_video_id=source_video.id))

        with session_factory() as session:
            (batch_id,) = session.scalars(select(BatchJobRow.id)).all()
        batch = batches.get(batch_id)
        assert batch.status == BatchStatus.FAILED
        assert batch.failed_count == batch.total_count
        for item in batches.list_items(batch.id):
            assert item.status == BatchItemStatus.FAILED
            assert "Could not enqueue batch" in item.error_message

    def test_abandon_fails_pending_items(self, fanout, batches):
        result = fanout.create_batch(kling_request(["a", "b", "c"]))
        assert fanout.abandon(result.batch_id, "Batch expansion failed: database is locked") == 3
        batch = batches.get(result.batch_id)
        assert batch.status == BatchStatus.FAILED
        assert batch.failed_count == 3
        assert fanout.abandon(result.batch_id, "again") == 0

    def test_duplicate_outcome_is_ignored(self, fanout, batches):
        result = fanout.create_batch(kling_request(["a", "b"]))
        fanout.expand(result.batch_id)
        assert fanout.record_outcome(result.batch_id, 0, success=True)
        assert not fanout.record_outcome(result.batch_id, 0, success=True)
        assert batches.get(result.batch_id).completed_count == 1


class TestCreateVariants:
    def test_tiktok_ab(self, fanout, batches, videos, queues, source_video):
        result = fanout.create_variants(VariantRequest(user_id="u1", source_video_id=source_video.id))
        assert result.total_count == 4
        (job,) = queues.jobs(VARIANTS_QUEUE)

        video_ids = fanout.expand(job.batch_id)
        jobs = queues.jobs(PIPELINE_QUEUE)
        assert len(jobs) == 4
        assert all(isinstance(j, PipelineJob) for j in jobs)
        assert all(j.preset_id == PipelinePresetId.CUSTOM for j in jobs)
        assert all(j.source_url == "http://media.test/videos/src.mp4" for j in jobs)
        assert jobs[0].stage_overrides.effects is None
        assert jobs[2].stage_overrides.effects.effects == ["camera_shake", "phone_quality", "film_grain"]

        child = videos.get(video_ids[1])
        assert child.generation_type == GenerationType.VARIANT
        assert child.title == "Serum - UGC light"
        assert child.product_id == "p1"
        assert child.duration_seconds == 12.0
        assert child.metadata == {
            "source_video_id": source_video.id,
            "variant_name": "UGC light",
            "preset": "tiktok_ab",
        }
        assert batches.get(job.batch_id).config == {"source_video_id": source_video.id, "preset": "tiktok_ab"}

    def test_full_test_with_subtitles(self, fanout, queues, source_video):
        request = VariantRequest(
            user_id="u1",
            source_video_id=source_video.id,
            preset=VariantPresetId.FULL_TEST,
            subtitle_texts=["Dry skin?", "Try this", "Glow in 7 days"],
        )
        assert fanout.create_variants(request).total_count == 5
        fanout.expand(queues.jobs(VARIANTS_QUEUE)[0].batch_id)
        subtitled = queues.jobs(PIPELINE_QUEUE)[3]
        entries = subtitled.stage_overrides.subtitles.entries
        assert [e.text for e in entries] == ["Dry skin?", "Try this", "Glow in 7 days"]
        assert entries[-1].end_time == pytest.approx(12.0)

    def test_full_test_without_subtitles(self, fanout, source_video):
        request = VariantRequest(user_id="u1", source_video_id=source_video.id, preset=VariantPresetId.FULL_TEST)
        assert fanout.create_variants(request).total_count == 3

    def test_subtitles_need_a_duration(self, fanout, videos):
        video = videos.create(user_id="u1", generation_type="kling")
        videos.begin(video.id, VideoStatus.GENERATING, 5, "submitting")
        videos.mark_ready(video.id, "http://media.test/videos/src.mp4")
        request = VariantRequest(
            user_id="u1", source_video_id=video.id, preset=VariantPresetId.FULL_TEST, subtitle_texts=["hi"]
        )
        with pytest.raises(ValidationError, match="duration"):
            fanout.create_variants(request)
        request = request.model_copy(update={"duration": 8.0})
        assert fanout.create_variants(request).total_count == 5

    def test_source_must_be_ready(self, fanout, videos):
        video = videos.create(user_id="u1", generation_type="kling")
        with pytest.raises(ValidationError) as exc_info:
            fanout.create_variants(VariantRequest(user_id="u1", source_video_id=video.id))
        assert exc_info.value.details == {"status": "draft"}

    def test_source_must_belong_to_user(self, fanout, source_video):
        with pytest.raises(ValidationError, match="another user"):
            fanout.create_variants(VariantRequest(user_id="u2", source_video_id=source_video.id))


class TestVariantRecipes:
    def test_split_subtitles(self):
        entries = split_subtitles(["a", "b", "c"], 9.0)
        assert [(e.start_time, e.end_time) for e in entries] == [
            (0.0, 3.0),
            (pytest.approx(2.8), 6.0),
            (pytest.approx(5.8), 9.0),
        ]

    def test_split_subtitles_drops_blank_texts(self):
        assert [e.text for e in split_subtitles(["a", " ", "b"], 4.0)] == ["a", "b"]

    def test_split_subtitles_without_input(self):
        assert split_subtitles([], 10.0) == []
        assert split_subtitles(["a"], 0) == []

    def test_custom_needs_variants(self):
        with pytest.raises(ValidationError):
            resolve_variants(VariantRequest(user_id="u1", source_video_id="v", preset=VariantPresetId.CUSTOM))

    def test_custom_variants_are_used_as_given(self):
        custom = [VariantSpec(name="Reels", platform=Platform.INSTAGRAM_REELS)]
        request = VariantRequest(
            user_id="u1", source_video_id="v", preset=VariantPresetId.CUSTOM, custom_variants=custom
        )
        assert resolve_variants(request) == custom

    def test_multi_platform_overrides(self):
        request = VariantRequest(user_id="u1", source_video_id="v", preset=VariantPresetId.MULTI_PLATFORM)
        platforms = [variant_overrides(v, []).optimize.platform for v in resolve_variants(request)]
        assert platforms == [Platform.TIKTOK, Platform.INSTAGRAM_REELS, Platform.YOUTUBE_SHORTS, Platform.TWITTER]

    def test_original_variant_is_a_republish(self):
        request = VariantRequest(user_id="u1", source_video_id="v")
        original = resolve_variants(request)[0]
        stages = build_stages(PipelinePresetId.CUSTOM, variant_overrides(original, []))
        assert [s.name for s in stages] == [StageName.INIT, StageName.THUMBNAIL, StageName.UPLOAD]
