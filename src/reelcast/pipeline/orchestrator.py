"""Pipeline orchestrator: runs an ordered stage list over one source video."""

import logging
import time
from collections.abc import Callable

from reelcast.models.errors import PipelineStageError, ReelcastError
from reelcast.models.pipeline import (
    PipelineConfig,
    PipelineResult,
    PipelineRun,
    StageRecord,
    StageStatus,
)
from reelcast.orchestrator.cancellation import NeverCancelled
from reelcast.orchestrator.progress import pipeline_progress
from reelcast.pipeline.stages import StageContext, StageRegistry
from reelcast.storage.temp_store import TempFileManager

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]
SnapshotCallback = Callable[[PipelineRun], None]


class PipelineOrchestrator:
    """Executes stages strictly in order inside a private working directory.

    The first failing stage aborts the run; nothing is published because the
    upload stage is always last. Cancellation is checked before every stage.
    Retryable errors (transient download failures) propagate so the queue can
    redeliver the job.
    """

    def __init__(self, stages: StageRegistry, temp_store: TempFileManager | None = None):
        self.stages = stages
        self.temp_store = temp_store or TempFileManager()

    def run(
        self,
        config: PipelineConfig,
        on_progress: ProgressCallback | None = None,
        cancellation=None,
        on_snapshot: SnapshotCallback | None = None,
    ) -> PipelineResult:
        cancellation = cancellation or NeverCancelled()
        weights = [s.weight for s in config.stages]
        count = len(config.stages)
        run = PipelineRun(stages=[StageRecord(name=s.name) for s in config.stages])

        def publish(index: int, stage_progress: float, message: str) -> None:
            if on_progress:
                on_progress(pipeline_progress(index, count, stage_progress, weights), message)

        def snapshot() -> None:
            if on_snapshot:
                on_snapshot(run.model_copy(deep=True))

        with self.temp_store.run_dir(prefix=f"pipeline_{config.video_id[:8]}") as work_dir:
            ctx = StageContext(config.video_id, config.source_url, work_dir)

            for index, spec in enumerate(config.stages):
                if cancellation.is_cancelled():
                    logger.info("Pipeline for video %s cancelled before stage %s", config.video_id, spec.name)
                    return PipelineResult(
                        success=False, cancelled=True, stage_history=run.stages[:index]
                    )

                record = run.stages[index]
                record.status = StageStatus.RUNNING
                run.current_stage_index = index
                snapshot()
                publish(index, 0, f"{spec.name.value}")

                def report(stage_progress: int, index=index, record=record, name=spec.name.value) -> None:
                    record.progress = max(record.progress, min(100, stage_progress))
                    publish(index, record.progress, name)

                ctx.report = report
                started = time.monotonic()
                try:
                    self.stages.get(spec.name)(ctx, spec.options)
                except ReelcastError as e:
                    if e.retryable:
                        raise
                    return self._fail(run, index, started, e, config, snapshot)
                except Exception as e:
                    return self._fail(run, index, started, e, config, snapshot)

                record.status = StageStatus.SUCCEEDED
                record.progress = 100
                record.duration_ms = int((time.monotonic() - started) * 1000)
                logger.info(
                    "Stage %s for video %s finished in %dms",
                    spec.name.value,
                    config.video_id,
                    record.duration_ms,
                )

            run.current_stage_index = count - 1
            run.outputs = dict(ctx.outputs)
            snapshot()
            publish(count, 0, "complete")

        return PipelineResult(
            success=True,
            output_artifact=ctx.outputs.get("video_url"),
            thumbnail_artifact=ctx.outputs.get("thumbnail_url"),
            stage_history=run.stages,
            metadata=ctx.metadata,
        )

    def _fail(
        self,
        run: PipelineRun,
        index: int,
        started: float,
        exc: Exception,
        config: PipelineConfig,
        snapshot: Callable[[], None],
    ) -> PipelineResult:
        record = run.stages[index]
        stage = record.name
        if not isinstance(exc, PipelineStageError):
            exc = PipelineStageError(str(exc), stage=stage.value)
        record.status = StageStatus.FAILED
        record.error = exc.message
        record.duration_ms = int((time.monotonic() - started) * 1000)
        snapshot()
        logger.error("Stage %s failed for video %s: %s", stage.value, config.video_id, exc.message)
        return PipelineResult(
            success=False,
            stage_history=run.stages[: index + 1],
            failed_stage=stage,
            error=exc.message,
        )
