"""Cooperative cancellation.

A user action writes ``status = cancelled`` on the Video; pollers and
pipeline stage transitions read it before each unit of work. There is no
preemption: an in-flight provider round-trip finishes before the flag is seen.
"""

import logging

from reelcast.db.repository import VideoRepository
from reelcast.models.errors import NotFoundError, ValidationError
from reelcast.models.video import CANCELLABLE_STATUSES

logger = logging.getLogger(__name__)


class CancellationToken:
    """Read-only view of one Video's cancelled flag."""

    def __init__(self, videos: VideoRepository, video_id: str):
        self.videos = videos
        self.video_id = video_id

    def is_cancelled(self) -> bool:
        return self.videos.is_cancelled(self.video_id)


class NeverCancelled:
    """Token for work that has no cancellable owner."""

    def is_cancelled(self) -> bool:
        return False


def cancel_video(videos: VideoRepository, video_id: str) -> None:
    """Request cancellation of an in-flight video."""
    status = videos.get_status(video_id)
    if status is None:
        raise NotFoundError(f"Video {video_id} not found")
    if status not in CANCELLABLE_STATUSES or not videos.cancel(video_id):
        raise ValidationError(
            f"Video {video_id} cannot be cancelled in status '{status.value}'",
            details={"status": status.value},
        )
    logger.info("Cancellation requested for video %s", video_id)
