"""Celery task definitions.

Run a worker per queue, e.g.::

    celery -A reelcast.workers.app worker -Q generation,avatar
    celery -A reelcast.workers.app worker -Q pipeline,batch,variants
"""

import logging
from collections.abc import Callable
from functools import lru_cache

from celery.signals import (
    task_failure,
    task_postrun,
    task_prerun,
    worker_ready,
    worker_shutdown,
)
from sqlalchemy.exc import OperationalError

from reelcast.config import get_settings
from reelcast.models.errors import ProviderUnavailable, ReelcastError
from reelcast.models.jobs import FanoutJob, PipelineJob, parse_generation_job
from reelcast.queue.registry import (
    AVATAR_QUEUE,
    BATCH_QUEUE,
    GENERATION_QUEUE,
    PIPELINE_QUEUE,
    TASK_NAMES,
    VARIANTS_QUEUE,
    create_celery_app,
)
from reelcast.services import Services, build_services

logger = logging.getLogger(__name__)

settings = get_settings()

celery_app = create_celery_app(settings)

# A locked SQLite file or a dropped connection is worth another attempt.
TRANSIENT_ERRORS = (ProviderUnavailable, OperationalError)


@lru_cache
def get_services() -> Services:
    return build_services(settings)


@worker_ready.connect
def worker_ready_handler(**extras):
    services = get_services()
    cleaned = services.temp_store.cleanup_expired(settings.temp_file_ttl_seconds)
    if cleaned:
        logger.info("Removed %d stale run directories", cleaned)


@worker_shutdown.connect
def worker_shutdown_handler(**extras):
    get_services().providers.close()
    logger.info("Provider clients closed")


@task_prerun.connect
def task_prerun_handler(task_id, task, args, kwargs, **extras):
    logger.info("Task starting: %s [%s]", task.name, task_id)


@task_postrun.connect
def task_postrun_handler(task_id, task, args, kwargs, retval, state, **extras):
    logger.info("Task completed: %s [%s] - State: %s", task.name, task_id, state)


@task_failure.connect
def task_failure_handler(task_id, exception, args, kwargs, traceback, einfo, **extras):
    logger.error("Task failed: %s - %s", task_id, exception)


def _run_with_retry(task, queue: str, run: Callable, give_up: Callable[[Exception], None]):
    """Run ``run()``; retry transient errors with exponential backoff, then give up."""
    try:
        return run()
    except TRANSIENT_ERRORS as exc:
        policy = get_services().queues.retry_policy(queue)
        retries = task.request.retries
        if policy.can_retry(retries):
            countdown = policy.countdown(retries)
            logger.warning(
                "%s job attempt %d/%d failed, retrying in %ds: %s",
                queue,
                retries + 1,
                policy.max_attempts,
                countdown,
                exc,
            )
            raise task.retry(exc=exc, countdown=countdown, max_retries=policy.max_attempts - 1)
        logger.error("%s job failed after %d attempts: %s", queue, retries + 1, exc)
        give_up(exc)
        return None


def _reject(payload: dict, exc: ReelcastError) -> dict:
    """A payload that does not validate can never succeed; fail its video if we can."""
    logger.error("Rejected malformed job payload: %s", exc.message)
    video_id = payload.get("video_id")
    if isinstance(video_id, str) and video_id:
        get_services().videos.mark_failed(video_id, exc.message)
    return {"video_id": video_id, "status": "failed", "error": exc.message}


def _generate(task, queue: str, payload: dict) -> dict:
    try:
        job = parse_generation_job(payload)
    except ReelcastError as e:
        return _reject(payload, e)

    worker = get_services().generation_worker()
    status = _run_with_retry(task, queue, lambda: worker.run(job), lambda exc: worker.fail(job, exc))
    return {"video_id": job.video_id, "status": str(status or "failed")}


@celery_app.task(bind=True, name=TASK_NAMES[GENERATION_QUEUE])
def generation_task(self, payload: dict) -> dict:
    """Kling (and demo) generation, one video per job."""
    return _generate(self, GENERATION_QUEUE, payload)


@celery_app.task(bind=True, name=TASK_NAMES[AVATAR_QUEUE])
def avatar_task(self, payload: dict) -> dict:
    """HeyGen avatar generation; same flow, longer polling budget."""
    return _generate(self, AVATAR_QUEUE, payload)


@celery_app.task(bind=True, name=TASK_NAMES[PIPELINE_QUEUE])
def pipeline_task(self, payload: dict) -> dict:
    try:
        job = PipelineJob.model_validate(payload)
    except ValueError as e:
        return _reject(payload, ReelcastError(f"Invalid pipeline job: {e}", component="validation"))

    worker = get_services().pipeline_worker()
    status = _run_with_retry(
        self, PIPELINE_QUEUE, lambda: worker.run(job), lambda exc: worker.fail(job, exc)
    )
    return {"video_id": job.video_id, "status": str(status or "failed")}


def _expand(task, queue: str, payload: dict) -> dict:
    job = FanoutJob.model_validate(payload)
    fanout = get_services().fanout
    video_ids = _run_with_retry(
        task,
        queue,
        lambda: fanout.expand(job.batch_id),
        lambda exc: fanout.abandon(job.batch_id, f"Batch expansion failed: {exc}"),
    )
    return {"batch_id": job.batch_id, "video_ids": video_ids or []}


@celery_app.task(bind=True, name=TASK_NAMES[BATCH_QUEUE])
def batch_task(self, payload: dict) -> dict:
    return _expand(self, BATCH_QUEUE, payload)


@celery_app.task(bind=True, name=TASK_NAMES[VARIANTS_QUEUE])
def variants_task(self, payload: dict) -> dict:
    return _expand(self, VARIANTS_QUEUE, payload)
