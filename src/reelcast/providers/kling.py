"""Kling video generation through the PiAPI task API."""

import logging

import httpx

from reelcast.models.errors import ProviderRejected, ValidationError
from reelcast.models.jobs import (
    BackgroundJob,
    CameraControlJob,
    CameraMove,
    ElementsJob,
    ExtendJob,
    ImageToVideoJob,
    InpaintJob,
    LipSyncJob,
    MotionRefJob,
    StyleTransferJob,
    TextToVideoJob,
    VideoEditJob,
)
from reelcast.models.provider import ProviderPhase, ProviderStatus
from reelcast.models.video import GenerationMode
from reelcast.providers.base import BaseProvider, first_present

logger = logging.getLogger(__name__)

# PiAPI has moved the result around between API revisions.
RESULT_URL_PATHS: tuple[tuple, ...] = (
    ("video_url",),
    ("output", "video_url"),
    ("output", "video"),
    ("output", "works", 0, "video", "resource_without_watermark"),
    ("output", "works", 0, "video", "resource"),
)
THUMBNAIL_URL_PATHS: tuple[tuple, ...] = (
    ("thumbnail_url",),
    ("output", "thumbnail_url"),
    ("output", "works", 0, "cover", "resource"),
)

_CAMERA_AXES = {
    "pan": "pan",
    "tilt": "tilt",
    "roll": "roll",
    "zoom": "zoom",
    "truck": "horizontal",
    "dolly": "zoom",
}
_CAMERA_SPEED = {"slow": 2.0, "medium": 5.0, "fast": 8.0}
_NEGATIVE_DIRECTIONS = {"left", "down", "out", "ccw"}


def camera_config(moves: list[CameraMove]) -> dict[str, float]:
    """Fold a list of camera moves into PiAPI's per-axis amounts."""
    config = {axis: 0.0 for axis in ("horizontal", "vertical", "pan", "tilt", "roll", "zoom")}
    for move in moves:
        amount = move.amount if move.amount is not None else _CAMERA_SPEED[move.speed]
        if move.direction in _NEGATIVE_DIRECTIONS:
            amount = -abs(amount)
        config[_CAMERA_AXES[move.type]] += amount
    return {axis: max(-10.0, min(10.0, v)) for axis, v in config.items()}


_GENERATION_JOBS = (TextToVideoJob, ImageToVideoJob, ElementsJob, MotionRefJob, CameraControlJob)
_EDIT_JOBS = (VideoEditJob, StyleTransferJob, InpaintJob, BackgroundJob)


class KlingProvider(BaseProvider):
    """Adapter for Kling via PiAPI.

    Submit: ``POST /api/v1/task`` -> ``data.task_id``.
    Poll: ``GET /api/v1/task/{id}`` -> ``data.status`` plus progress.
    """

    name = "kling"
    supported_modes = frozenset(m for m in GenerationMode if m != GenerationMode.AVATAR)
    status_map = {
        "pending": ProviderPhase.QUEUED,
        "staged": ProviderPhase.QUEUED,
        "submitted": ProviderPhase.QUEUED,
        "queued": ProviderPhase.QUEUED,
        "processing": ProviderPhase.RUNNING,
        "running": ProviderPhase.RUNNING,
        "in_progress": ProviderPhase.RUNNING,
        "completed": ProviderPhase.SUCCEEDED,
        "succeed": ProviderPhase.SUCCEEDED,
        "success": ProviderPhase.SUCCEEDED,
        "succeeded": ProviderPhase.SUCCEEDED,
        "failed": ProviderPhase.FAILED,
        "error": ProviderPhase.FAILED,
    }

    def __init__(
        self,
        base_url: str = "https://api.piapi.ai",
        api_key: str = "",
        default_version: str = "1.6",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        super().__init__(base_url, api_key, timeout=timeout, transport=transport)
        self.default_version = default_version

    def auth_headers(self) -> dict[str, str]:
        return {"x-api-key": self.api_key}

    def submit(self, job) -> str:
        payload = self.build_payload(job)
        body = self._request("POST", "/api/v1/task", json=payload)
        task_id = first_present(body, (("data", "task_id"), ("task_id",)))
        code = body.get("code")
        if not task_id or code not in (None, 0, 200):
            raise ProviderRejected(
                f"kling did not accept the task: {body.get('message') or 'no task id returned'}",
                status_code=200,
                body=str(body),
                provider=self.name,
            )
        logger.info("Kling task %s submitted (%s)", task_id, job.mode)
        return task_id

    def poll(self, task_id: str) -> ProviderStatus:
        body = self._request("GET", f"/api/v1/task/{task_id}")
        data = body.get("data") or {}
        phase = self.map_phase(data.get("status"))
        error = data.get("error")
        if isinstance(error, dict):
            error = error.get("message") or error.get("raw_message") or None
        return ProviderStatus(
            phase=phase,
            progress=_as_float(data.get("progress")),
            result_url=first_present(data, RESULT_URL_PATHS),
            thumbnail_url=first_present(data, THUMBNAIL_URL_PATHS),
            duration=_as_float(data.get("duration")),
            error=error or None,
        )

    def build_payload(self, job) -> dict:
        """Translate a mode-specific job into PiAPI's task payload."""
        if isinstance(job, _GENERATION_JOBS):
            return self._task("video_generation", self._generation_input(job))
        if isinstance(job, _EDIT_JOBS):
            return self._task("video_edit", self._edit_input(job))
        if isinstance(job, LipSyncJob):
            return self._task(
                "lip_sync",
                {
                    "origin_task_id": job.origin_task_id,
                    "tts_text": job.tts_text,
                    "tts_timbre": job.tts_voice,
                    "local_dubbing_url": job.audio_url,
                },
            )
        if isinstance(job, ExtendJob):
            return self._task(
                "extend_video", {"origin_task_id": job.origin_task_id, "prompt": job.prompt}
            )
        raise ValidationError(f"kling does not support mode '{job.mode}'")

    def _edit_input(self, job) -> dict:
        data = {"origin_task_id": job.origin_task_id}
        if isinstance(job, VideoEditJob):
            data.update(edit_type="natural", prompt=job.edit_prompt, strength=job.edit_strength)
        elif isinstance(job, StyleTransferJob):
            data.update(
                edit_type="style",
                style_preset_id=job.style_preset_id,
                style_image_url=job.style_image_url,
                prompt=job.prompt,
                strength=job.edit_strength,
            )
        elif isinstance(job, InpaintJob):
            data.update(edit_type="inpaint", prompt=job.remove_prompt)
        elif isinstance(job, BackgroundJob):
            data.update(
                edit_type="background",
                background_preset_id=job.background_preset_id,
                prompt=job.background_prompt,
                background_image_url=job.background_image_url,
            )
        return data

    def _generation_input(self, job) -> dict:
        data = {
            "prompt": job.prompt,
            "negative_prompt": job.negative_prompt,
            "duration": job.duration,
            "aspect_ratio": job.aspect_ratio,
            "mode": "pro" if job.quality == "pro" else "std",
            "version": job.model_version or self.default_version,
        }
        if job.cfg_scale is not None:
            data["cfg_scale"] = job.cfg_scale
        if job.enable_audio:
            data["enable_audio"] = True

        if isinstance(job, ImageToVideoJob):
            data["image_url"] = job.image_url
            if job.image_tail_url:
                data["image_tail_url"] = job.image_tail_url
        elif isinstance(job, ElementsJob):
            data["elements"] = [{"image_url": url} for url in job.element_images]
        elif isinstance(job, MotionRefJob):
            data["image_url"] = job.image_url
            data["motion_reference"] = {
                "preset_id": job.motion_preset_id,
                "video_url": job.motion_video_url,
                "strength": job.motion_strength,
            }
        elif isinstance(job, CameraControlJob):
            data["image_url"] = job.image_url
            if job.camera_controls:
                data["camera_control"] = {"type": "simple", "config": camera_config(job.camera_controls)}
            else:
                data["camera_control"] = {
                    "type": "preset",
                    "preset_id": job.camera_preset_id,
                    "reference_video_url": job.camera_reference_video_url,
                }
        return data

    @staticmethod
    def _task(task_type: str, data: dict) -> dict:
        return {
            "model": "kling",
            "task_type": task_type,
            "input": {k: v for k, v in data.items() if v is not None},
        }


def _as_float(value) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None
