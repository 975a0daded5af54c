"""Network-free provider for local runs and demos."""

import time
import uuid

from reelcast.models.errors import ValidationError
from reelcast.models.provider import ProviderPhase, ProviderStatus
from reelcast.models.video import GenerationMode
from reelcast.providers.base import BaseProvider


class DemoProvider(BaseProvider):
    """Pretends to render for ``render_seconds`` and then returns a fixed sample URL.

    The task id carries its own submission time, so polling needs no shared state.
    """

    name = "demo"
    supported_modes = frozenset(GenerationMode)

    def __init__(
        self,
        sample_url: str = "https://storage.googleapis.com/gtv-videos-bucket/sample/ForBiggerBlazes.mp4",
        render_seconds: float = 30.0,
        clock=time.time,
    ):
        super().__init__("http://demo.invalid")
        self.sample_url = sample_url
        self.render_seconds = render_seconds
        self.clock = clock

    def is_available(self) -> bool:
        return True

    def submit(self, job) -> str:
        return f"demo_{uuid.uuid4().hex[:8]}_{self.clock():.3f}"

    def poll(self, task_id: str) -> ProviderStatus:
        try:
            started = float(task_id.rsplit("_", 1)[1])
        except (IndexError, ValueError):
            raise ValidationError(f"Not a demo task id: {task_id}")

        elapsed = self.clock() - started
        if elapsed >= self.render_seconds:
            return ProviderStatus(
                phase=ProviderPhase.SUCCEEDED,
                progress=100.0,
                result_url=self.sample_url,
                duration=15.0,
            )
        progress = 100.0 * elapsed / self.render_seconds if self.render_seconds > 0 else 0.0
        phase = ProviderPhase.QUEUED if elapsed < 1.0 else ProviderPhase.RUNNING
        return ProviderStatus(phase=phase, progress=progress)
