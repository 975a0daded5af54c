"""HeyGen talking-avatar generation."""

import logging

import httpx

from reelcast.models.errors import ProviderRejected, ValidationError
from reelcast.models.jobs import AvatarJob
from reelcast.models.provider import ProviderPhase, ProviderStatus
from reelcast.models.video import GenerationMode
from reelcast.providers.base import BaseProvider, first_present

logger = logging.getLogger(__name__)

RESULT_URL_PATHS: tuple[tuple, ...] = (("video_url",), ("video_url_caption",), ("url",))

# HeyGen reports no numeric progress; these stand in for it.
_PHASE_PROGRESS = {ProviderPhase.QUEUED: 0.0, ProviderPhase.RUNNING: 50.0}

PORTRAIT_DIMENSION = {"width": 1080, "height": 1920}


class HeyGenProvider(BaseProvider):
    """Adapter for HeyGen avatar videos.

    Submit: ``POST /v2/video/generate`` -> ``data.video_id``.
    Poll: ``GET /v1/video_status.get?video_id=...``.
    """

    name = "heygen"
    supported_modes = frozenset({GenerationMode.AVATAR})
    status_map = {
        "pending": ProviderPhase.QUEUED,
        "waiting": ProviderPhase.QUEUED,
        "processing": ProviderPhase.RUNNING,
        "completed": ProviderPhase.SUCCEEDED,
        "failed": ProviderPhase.FAILED,
    }

    def __init__(
        self,
        base_url: str = "https://api.heygen.com",
        api_key: str = "",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        super().__init__(base_url, api_key, timeout=timeout, transport=transport)

    def auth_headers(self) -> dict[str, str]:
        return {"X-Api-Key": self.api_key}

    def submit(self, job) -> str:
        if not isinstance(job, AvatarJob):
            raise ValidationError(f"heygen does not support mode '{job.mode}'")
        body = self._request("POST", "/v2/video/generate", json=self.build_payload(job))
        video_id = first_present(body, (("data", "video_id"),))
        if not video_id:
            raise ProviderRejected(
                f"heygen did not accept the video: {body.get('error') or 'no video id returned'}",
                status_code=200,
                body=str(body),
                provider=self.name,
            )
        logger.info("HeyGen video %s submitted", video_id)
        return video_id

    def poll(self, task_id: str) -> ProviderStatus:
        body = self._request("GET", "/v1/video_status.get", params={"video_id": task_id})
        data = body.get("data") or {}
        phase = self.map_phase(data.get("status"))
        error = data.get("error")
        if isinstance(error, dict):
            error = error.get("message") or error.get("detail")
        duration = data.get("duration")
        return ProviderStatus(
            phase=phase,
            progress=_PHASE_PROGRESS.get(phase),
            result_url=first_present(data, RESULT_URL_PATHS),
            thumbnail_url=data.get("thumbnail_url") or None,
            duration=float(duration) if isinstance(duration, (int, float)) else None,
            error=error or None,
        )

    def build_payload(self, job: AvatarJob) -> dict:
        video_input: dict = {
            "character": {
                "type": "avatar",
                "avatar_id": job.avatar_id,
                "avatar_style": "normal",
            },
        }
        voice = {"type": "text", "input_text": job.script}
        if job.voice_id:
            voice["voice_id"] = job.voice_id
        video_input["voice"] = voice
        if job.background_url:
            video_input["background"] = {"type": "image", "url": job.background_url}
        else:
            video_input["background"] = {"type": "color", "value": job.background_color}
        return {"video_inputs": [video_input], "dimension": dict(PORTRAIT_DIMENSION)}
