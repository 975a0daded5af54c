"""Bounded polling of a remote generation task."""

import logging
import time
from collections.abc import Callable

from reelcast.models.errors import GenerationTimedOut, ProviderTaskFailed
from reelcast.models.provider import PollOutcome, ProviderPhase
from reelcast.orchestrator.cancellation import NeverCancelled
from reelcast.orchestrator.progress import map_progress
from reelcast.providers.base import BaseProvider

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


class TaskPoller:
    """Drives one remote task from submitted to a terminal outcome.

    Each iteration checks cancellation, polls once, publishes mapped progress
    for non-terminal phases and sleeps. Exhausting ``max_attempts`` raises
    GenerationTimedOut; a provider-reported failure raises ProviderTaskFailed.
    Transport errors from the adapter propagate untouched so the queue can
    retry the whole job.
    """

    def __init__(
        self,
        provider: BaseProvider,
        interval_seconds: float = 10.0,
        max_attempts: int = 60,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.provider = provider
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self.sleep = sleep

    def wait(
        self,
        task_id: str,
        on_progress: ProgressCallback | None = None,
        cancellation=None,
    ) -> PollOutcome:
        cancellation = cancellation or NeverCancelled()

        for attempt in range(1, self.max_attempts + 1):
            if cancellation.is_cancelled():
                logger.info("Task %s: cancellation observed before poll %d", task_id, attempt)
                return PollOutcome(success=False, cancelled=True, attempts=attempt - 1)

            status = self.provider.poll(task_id)

            if status.phase == ProviderPhase.SUCCEEDED:
                if not status.result_url:
                    raise ProviderTaskFailed(
                        f"Task {task_id} succeeded without a result URL",
                        provider=self.provider.name,
                        details={"task_id": task_id},
                    )
                return PollOutcome(
                    success=True,
                    result_url=status.result_url,
                    thumbnail_url=status.thumbnail_url,
                    duration=status.duration,
                    attempts=attempt,
                )

            if status.phase == ProviderPhase.FAILED:
                raise ProviderTaskFailed(
                    f"{self.provider.name} generation failed: {status.error or 'unknown error'}",
                    provider=self.provider.name,
                    details={"task_id": task_id},
                )

            ui_progress, message = map_progress(status.progress, status.phase)
            if on_progress:
                on_progress(ui_progress, message)

            if attempt < self.max_attempts:
                self.sleep(self.interval_seconds)

        raise GenerationTimedOut(
            f"Task {task_id} did not finish within "
            f"{self.max_attempts * self.interval_seconds:.0f}s",
            details={"task_id": task_id, "attempts": self.max_attempts},
        )
