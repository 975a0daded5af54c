"""Video generation, status and cancellation endpoints."""

from fastapi import APIRouter, Body, Depends

from reelcast.api.dependencies import get_services, get_user_id, resolve_user_id
from reelcast.models.jobs import AvatarJob, parse_generation_job
from reelcast.models.video import GenerationType
from reelcast.orchestrator.cancellation import cancel_video
from reelcast.queue.registry import queue_for_job
from reelcast.services import Services

router = APIRouter(prefix="/api/v1/videos", tags=["videos"])

# stands in for the real id until the Video row exists
_PENDING_ID = "pending"


@router.post("/generate", status_code=202)
def generate_video(
    body: dict = Body(...),
    header_user_id: str | None = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    """Create a draft Video and enqueue its generation job."""
    user_id = resolve_user_id(body, header_user_id)
    job = parse_generation_job({**body, "video_id": _PENDING_ID, "user_id": user_id})
    provider = services.providers.for_job(job)

    video = services.videos.create(
        user_id=user_id,
        generation_type=(
            GenerationType.HEYGEN if isinstance(job, AvatarJob) else GenerationType(provider.name)
        ),
        title=body.get("title"),
        product_id=job.product_id,
        generation_config={"mode": job.mode, "provider": provider.name},
        progress_message="queued",
    )
    job = job.model_copy(update={"video_id": video.id})
    queue = queue_for_job(job)
    task_id = services.queues.enqueue(queue, job)
    return {
        "video_id": video.id,
        "status": video.status.value,
        "queue": queue,
        "task_id": task_id,
    }


@router.get("/{video_id}/status")
def get_video_status(video_id: str, services: Services = Depends(get_services)):
    """Current status of a video, as shown in the dashboard."""
    video = services.videos.get(video_id)
    return {
        "video_id": video.id,
        "status": video.status.value,
        "progress": video.progress,
        "message": video.progress_message,
        "error": video.error_message,
        "remote_url": video.remote_url,
        "thumbnail_url": video.thumbnail_url,
        "metadata": video.metadata,
    }


@router.post("/{video_id}/cancel")
def cancel(video_id: str, services: Services = Depends(get_services)):
    cancel_video(services.videos, video_id)
    return {"video_id": video_id, "status": "cancelled"}
