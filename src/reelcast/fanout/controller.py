"""Batch and variant fan-out.

A request is validated as a whole, persisted as one parent plus N items in a
single transaction, and handed to the queue as one expansion job. Expansion
claims each pending item (creating its Video in the same transaction) and
enqueues the child. Children report back through :meth:`record_outcome`.
"""

import logging

from pydantic import BaseModel

from reelcast.config import Settings, get_settings
from reelcast.db.repository import BatchRepository, VideoRepository
from reelcast.fanout.variants import resolve_variants, split_subtitles, variant_overrides
from reelcast.models.batch import (
    BatchItemStatus,
    BatchJob,
    BatchType,
    FanoutResult,
    HeyGenBatchConfig,
    HeyGenBatchRequest,
    KlingBatchConfig,
    KlingBatchRequest,
    VariantRequest,
)
from reelcast.models.errors import ValidationError
from reelcast.models.jobs import (
    AvatarJob,
    FanoutJob,
    ImageToVideoJob,
    PipelineJob,
    TextToVideoJob,
)
from reelcast.models.pipeline import PipelinePresetId
from reelcast.models.video import GenerationType, VideoStatus
from reelcast.queue.registry import (
    AVATAR_QUEUE,
    BATCH_QUEUE,
    GENERATION_QUEUE,
    PIPELINE_QUEUE,
    VARIANTS_QUEUE,
    QueueRegistry,
)

logger = logging.getLogger(__name__)

MAX_SCRIPT_LENGTH = 5000


class FanoutController:
    """Creates parent/child job sets and aggregates child outcomes."""

    def __init__(
        self,
        batches: BatchRepository,
        videos: VideoRepository,
        queues: QueueRegistry,
        settings: Settings | None = None,
    ):
        self.batches = batches
        self.videos = videos
        self.queues = queues
        self.settings = settings or get_settings()

    # -- creation -------------------------------------------------------

    def create_batch(self, request: HeyGenBatchRequest | KlingBatchRequest) -> FanoutResult:
        """Validate every item, persist the batch, then enqueue its expansion."""
        self._check_item_count(len(request.items))
        problems: dict[str, str] = {}
        for i, item in enumerate(request.items):
            if isinstance(request, HeyGenBatchRequest):
                if not item.script or not item.script.strip():
                    problems[str(i)] = "script is required"
                elif len(item.script) > MAX_SCRIPT_LENGTH:
                    problems[str(i)] = f"script exceeds {MAX_SCRIPT_LENGTH} characters"
            elif not (item.prompt or item.image_url):
                problems[str(i)] = "prompt or image_url is required"
        if problems:
            raise ValidationError(
                f"{len(problems)} batch item(s) are invalid", details={"items": problems}
            )

        batch, items = self.batches.create(
            user_id=request.user_id,
            batch_type=BatchType(request.type),
            items=[item.model_dump(mode="json") for item in request.items],
            name=request.name,
            config=request.config.model_dump(mode="json"),
        )
        logger.info("Created %s batch %s with %d items", request.type, batch.id, len(items))
        self._enqueue_expansion(BATCH_QUEUE, batch.id, request.user_id)
        return FanoutResult(batch_id=batch.id, item_ids=[i.id for i in items], total_count=len(items))

    def create_variants(self, request: VariantRequest) -> FanoutResult:
        """Persist one variant item per recipe applied to the source video."""
        source = self.videos.get(request.source_video_id)
        if source.user_id != request.user_id:
            raise ValidationError("Source video belongs to another user")
        if source.status != VideoStatus.READY or not source.remote_url:
            raise ValidationError(
                "Source video has no finished output to vary",
                details={"status": source.status.value},
            )

        variants = resolve_variants(request)
        self._check_item_count(len(variants))

        entries = []
        if request.subtitle_texts:
            duration = request.duration or source.duration_seconds
            if not duration:
                raise ValidationError("duration is required to place subtitle texts")
            entries = split_subtitles(request.subtitle_texts, duration)

        items = [
            {
                "name": variant.name,
                "title": f"{source.title or 'Video'} - {variant.name}",
                "product_id": source.product_id,
                "source_url": source.remote_url,
                "duration": source.duration_seconds,
                "overrides": variant_overrides(variant, entries).model_dump(mode="json"),
            }
            for variant in variants
        ]
        batch, rows = self.batches.create(
            user_id=request.user_id,
            batch_type=BatchType.VARIANT,
            items=items,
            name=request.name or f"{request.preset.value} variants",
            config={"source_video_id": source.id, "preset": request.preset.value},
        )
        logger.info("Created variant set %s (%d variants) for video %s", batch.id, len(rows), source.id)
        self._enqueue_expansion(VARIANTS_QUEUE, batch.id, request.user_id)
        return FanoutResult(batch_id=batch.id, item_ids=[r.id for r in rows], total_count=len(rows))

    def _enqueue_expansion(self, queue: str, batch_id: str, user_id: str) -> None:
        """Hand the batch to the queue; if that fails, settle it as failed and re-raise."""
        try:
            self.queues.enqueue(queue, FanoutJob(batch_id=batch_id, user_id=user_id))
        except Exception as e:
            logger.error("Could not enqueue expansion of batch %s: %s", batch_id, e)
            self.abandon(batch_id, f"Could not enqueue batch: {e}")
            raise

    def _check_item_count(self, count: int) -> None:
        if count < 1 or count > self.settings.max_batch_items:
            raise ValidationError(
                f"A batch needs between 1 and {self.settings.max_batch_items} items, got {count}"
            )

    # -- expansion ------------------------------------------------------

    def expand(self, batch_id: str) -> list[str]:
        """Create and enqueue every still-pending child. Safe to redeliver."""
        batch = self.batches.get(batch_id)
        if batch.is_terminal:
            return []
        self.batches.mark_started(batch_id)

        video_ids = []
        for item in self.batches.list_items(batch_id, status=BatchItemStatus.PENDING):
            queue, video, build_job = self._child(batch, item.config)
            video_id = self.batches.claim_item(batch_id, item.item_index, video)
            if video_id is None:
                continue
            job = build_job(video_id, item.item_index)
            try:
                self.queues.enqueue(queue, job)
            except Exception as e:
                logger.error("Could not enqueue item %d of batch %s: %s", item.item_index, batch_id, e)
                self.videos.mark_failed(video_id, f"Could not enqueue job: {e}")
                self.record_outcome(batch_id, item.item_index, success=False, error=str(e))
                continue
            video_ids.append(video_id)

        logger.info("Expanded batch %s: %d children enqueued", batch_id, len(video_ids))
        return video_ids

    def abandon(self, batch_id: str, error: str) -> int:
        """Fail every item expansion never reached so the parent still finalizes."""
        abandoned = 0
        for item in self.batches.list_items(batch_id, status=BatchItemStatus.PENDING):
            if self.record_outcome(batch_id, item.item_index, success=False, error=error):
                abandoned += 1
        if abandoned:
            logger.warning("Abandoned %d pending items of batch %s: %s", abandoned, batch_id, error)
        return abandoned

    def _child(self, batch: BatchJob, item: dict):
        """Return (queue, video fields, job factory) for one item."""
        video = {
            "user_id": batch.user_id,
            "title": item.get("title"),
            "product_id": item.get("product_id"),
            "status": VideoStatus.DRAFT.value,
            "progress_message": "queued",
        }
        ref = {"batch_id": batch.id, "user_id": batch.user_id, "product_id": item.get("product_id")}

        if batch.type == BatchType.HEYGEN:
            config = HeyGenBatchConfig.model_validate(batch.config)
            video["generation_type"] = GenerationType.HEYGEN.value

            def build(video_id: str, index: int) -> BaseModel:
                return AvatarJob(
                    video_id=video_id,
                    item_index=index,
                    avatar_id=config.avatar_id,
                    voice_id=config.voice_id,
                    background_url=config.background_url,
                    script=item["script"],
                    **ref,
                )

            return AVATAR_QUEUE, video, build

        if batch.type == BatchType.KLING:
            config = KlingBatchConfig.model_validate(batch.config)
            video["generation_type"] = GenerationType.KLING.value
            options = {
                "model_version": config.model_version,
                "aspect_ratio": config.aspect_ratio,
                "quality": config.quality,
                "duration": config.duration,
                "enable_audio": config.enable_audio,
            }

            def build(video_id: str, index: int) -> BaseModel:
                if item.get("image_url"):
                    return ImageToVideoJob(
                        video_id=video_id,
                        item_index=index,
                        image_url=item["image_url"],
                        prompt=item.get("prompt") or "",
                        **options,
                        **ref,
                    )
                return TextToVideoJob(
                    video_id=video_id, item_index=index, prompt=item["prompt"], **options, **ref
                )

            return GENERATION_QUEUE, video, build

        video["generation_type"] = GenerationType.VARIANT.value
        video["metadata_"] = {
            "source_video_id": batch.config.get("source_video_id"),
            "variant_name": item.get("name"),
            "preset": batch.config.get("preset"),
        }
        if item.get("duration"):
            video["duration_seconds"] = item["duration"]

        def build(video_id: str, index: int) -> BaseModel:
            return PipelineJob(
                video_id=video_id,
                user_id=batch.user_id,
                source_url=item["source_url"],
                preset_id=PipelinePresetId.CUSTOM,
                stage_overrides=item.get("overrides"),
                batch_id=batch.id,
                item_index=index,
            )

        return PIPELINE_QUEUE, video, build

    # -- aggregation ----------------------------------------------------

    def record_outcome(
        self, batch_id: str, item_index: int, success: bool, error: str | None = None
    ) -> bool:
        """Count a child's terminal outcome once; duplicates are ignored."""
        counted = self.batches.record_outcome(batch_id, item_index, success, error)
        if counted:
            logger.info(
                "Batch %s item %d %s", batch_id, item_index, "completed" if success else f"failed: {error}"
            )
        else:
            logger.debug("Duplicate outcome for batch %s item %d ignored", batch_id, item_index)
        return counted
