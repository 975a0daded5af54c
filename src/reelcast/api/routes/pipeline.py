"""Post-processing and variant endpoints for finished videos."""

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from reelcast.api.dependencies import get_services, get_user_id, parse_body, resolve_user_id
from reelcast.models.batch import VariantRequest
from reelcast.models.errors import ValidationError
from reelcast.models.jobs import PipelineJob
from reelcast.models.pipeline import PipelineOverrides, PipelinePresetId
from reelcast.models.video import VideoStatus
from reelcast.queue.registry import PIPELINE_QUEUE
from reelcast.services import Services

router = APIRouter(prefix="/api/v1/videos", tags=["pipeline"])


class PipelineRequest(BaseModel):
    preset_id: PipelinePresetId = PipelinePresetId.TIKTOK_UGC
    stage_overrides: PipelineOverrides | None = None


@router.post("/{video_id}/pipeline", status_code=202)
def start_pipeline(
    video_id: str,
    body: dict | None = Body(default=None),
    header_user_id: str | None = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    """Enqueue a post-processing run over a ready video."""
    body = body or {}
    user_id = resolve_user_id(body, header_user_id)
    request = parse_body(PipelineRequest, body, "pipeline request")
    video = services.videos.get(video_id)
    if video.status != VideoStatus.READY or not video.remote_url:
        raise ValidationError(
            "Only a ready video can be post-processed",
            details={"status": video.status.value},
        )

    job = PipelineJob(
        video_id=video.id,
        user_id=user_id,
        source_url=video.remote_url,
        preset_id=request.preset_id,
        stage_overrides=request.stage_overrides,
    )
    task_id = services.queues.enqueue(PIPELINE_QUEUE, job)
    return {"video_id": video.id, "preset_id": request.preset_id.value, "task_id": task_id}


@router.post("/{video_id}/variants", status_code=202)
def create_variants(
    video_id: str,
    body: dict | None = Body(default=None),
    header_user_id: str | None = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    """Fan a finished video out into post-processed variants."""
    body = body or {}
    user_id = resolve_user_id(body, header_user_id)
    request = parse_body(
        VariantRequest, {**body, "user_id": user_id, "source_video_id": video_id}, "variant request"
    )
    result = services.fanout.create_variants(request)
    return result.model_dump()
