"""Durable job queues on Celery.

One queue per job type. Producers only need the task name, so the API
process enqueues with ``send_task`` and never imports the worker module.
"""

import logging

from celery import Celery
from pydantic import BaseModel, Field

from reelcast.config import Settings, get_settings
from reelcast.models.jobs import AvatarJob

logger = logging.getLogger(__name__)

GENERATION_QUEUE = "generation"
AVATAR_QUEUE = "avatar"
PIPELINE_QUEUE = "pipeline"
BATCH_QUEUE = "batch"
VARIANTS_QUEUE = "variants"

QUEUES = (GENERATION_QUEUE, AVATAR_QUEUE, PIPELINE_QUEUE, BATCH_QUEUE, VARIANTS_QUEUE)

TASK_NAMES = {queue: f"reelcast.{queue}" for queue in QUEUES}


class RetryPolicy(BaseModel):
    """Bounded exponential backoff for transient failures."""

    max_attempts: int = Field(default=3, ge=1)
    base_seconds: float = Field(default=10.0, ge=0)

    def countdown(self, retries: int) -> int:
        return int(self.base_seconds * 2**retries)

    def can_retry(self, retries: int) -> bool:
        """``retries`` is the number of retries already performed."""
        return retries + 1 < self.max_attempts


def create_celery_app(settings: Settings | None = None) -> Celery:
    settings = settings or get_settings()
    app = Celery(
        "reelcast",
        broker=settings.celery_broker_url,
        backend=settings.celery_result_backend,
    )
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_track_started=True,
        # at-least-once: ack after the task body returns, requeue on worker loss
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        worker_concurrency=settings.worker_concurrency,
        task_routes={name: {"queue": queue} for queue, name in TASK_NAMES.items()},
        result_expires=86400,
    )
    return app


def queue_for_job(job) -> str:
    """Avatar renders go to their own queue; every other generation mode shares one."""
    return AVATAR_QUEUE if isinstance(job, AvatarJob) else GENERATION_QUEUE


class QueueRegistry:
    """Per-process handle on the named queues and their retry policies."""

    def __init__(self, settings: Settings | None = None, app: Celery | None = None):
        self.settings = settings or get_settings()
        self._app = app

    @property
    def app(self) -> Celery:
        if self._app is None:
            self._app = create_celery_app(self.settings)
        return self._app

    def retry_policy(self, queue: str) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.settings.retry_max_attempts.get(queue, 3),
            base_seconds=self.settings.retry_base_seconds.get(queue, 10.0),
        )

    def enqueue(self, queue: str, payload: BaseModel) -> str:
        """Send ``payload`` to ``queue`` and return the queue's task id."""
        if queue not in TASK_NAMES:
            raise ValueError(f"Unknown queue '{queue}'")
        result = self.app.send_task(
            TASK_NAMES[queue],
            kwargs={"payload": payload.model_dump(mode="json")},
            queue=queue,
        )
        logger.info("Enqueued %s job %s", queue, result.id)
        return result.id
