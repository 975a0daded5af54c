"""Narrow, idempotent writes against the Video and BatchJob records.

Every status/progress write is a single UPDATE keyed by id whose WHERE clause
encodes the allowed transition. A write that no longer applies (the video was
cancelled, progress already moved past the value, the child outcome was
already recorded) simply matches zero rows.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy import case, select, update
from sqlalchemy.orm import Session, sessionmaker

from reelcast.db.models import BatchJobItemRow, BatchJobRow, VideoRow
from reelcast.models.batch import BatchItemStatus, BatchJob, BatchJobItem, BatchStatus
from reelcast.models.errors import NotFoundError
from reelcast.models.video import (
    ACTIVE_STATUSES,
    CANCELLABLE_STATUSES,
    ProviderTask,
    Video,
    VideoStatus,
)

logger = logging.getLogger(__name__)

_ACTIVE = [s.value for s in ACTIVE_STATUSES]
_OPEN_ITEM = [BatchItemStatus.PENDING.value, BatchItemStatus.PROCESSING.value]
_TERMINAL_BATCH = [BatchStatus.COMPLETED.value, BatchStatus.FAILED.value]


def _execute(session: Session, stmt) -> int:
    result = session.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount


class VideoRepository:
    """Persistence for Video records."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._sessions = session_factory

    def create(
        self,
        user_id: str,
        generation_type: str,
        title: str | None = None,
        product_id: str | None = None,
        status: VideoStatus = VideoStatus.DRAFT,
        generation_config: dict | None = None,
        batch_id: str | None = None,
        progress_message: str = "",
    ) -> Video:
        with self._sessions.begin() as session:
            row = VideoRow(
                user_id=user_id,
                generation_type=str(generation_type),
                title=title,
                product_id=product_id,
                status=status.value,
                progress=0,
                progress_message=progress_message,
                generation_config=generation_config or {},
                metadata_={},
                batch_id=batch_id,
            )
            session.add(row)
            session.flush()
            session.refresh(row)
            return Video.model_validate(row)

    def get(self, video_id: str) -> Video:
        with self._sessions() as session:
            row = session.get(VideoRow, video_id)
            if row is None:
                raise NotFoundError(f"Video {video_id} not found")
            return Video.model_validate(row)

    def get_status(self, video_id: str) -> VideoStatus | None:
        with self._sessions() as session:
            status = session.scalar(select(VideoRow.status).where(VideoRow.id == video_id))
            return VideoStatus(status) if status else None

    def is_cancelled(self, video_id: str) -> bool:
        return self.get_status(video_id) == VideoStatus.CANCELLED

    def begin(
        self,
        video_id: str,
        status: VideoStatus,
        progress: int = 0,
        message: str = "",
        from_ready: bool = False,
    ) -> bool:
        """Move a video into an active status.

        A fresh start (a draft, or with ``from_ready`` a ready video entering
        post-processing) resets progress; an already-active video keeps the
        higher of old and new progress. Cancelled and failed videos are left
        alone.
        """
        startable = [VideoStatus.DRAFT.value]
        if from_ready:
            startable.append(VideoStatus.READY.value)
        with self._sessions.begin() as session:
            matched = _execute(
                session,
                update(VideoRow)
                .where(VideoRow.id == video_id, VideoRow.status.in_(startable))
                .values(
                    status=status.value,
                    progress=progress,
                    progress_message=message,
                    error_message=None,
                ),
            )
            if not matched:
                matched = _execute(
                    session,
                    update(VideoRow)
                    .where(VideoRow.id == video_id, VideoRow.status.in_(_ACTIVE))
                    .values(
                        status=status.value,
                        progress=case(
                            (VideoRow.progress < progress, progress), else_=VideoRow.progress
                        ),
                        progress_message=message,
                    ),
                )
        return matched == 1

    def update_progress(self, video_id: str, progress: int, message: str) -> bool:
        """Publish progress; never lowers it and never touches a non-active video."""
        progress = max(0, min(100, int(progress)))
        with self._sessions.begin() as session:
            matched = _execute(
                session,
                update(VideoRow)
                .where(
                    VideoRow.id == video_id,
                    VideoRow.status.in_(_ACTIVE),
                    VideoRow.progress <= progress,
                )
                .values(progress=progress, progress_message=message),
            )
        return matched == 1

    def set_provider_task(self, video_id: str, task: ProviderTask) -> None:
        self._merge_json(video_id, "generation_config", {"provider_task": task.model_dump(mode="json")})

    def merge_metadata(self, video_id: str, patch: dict) -> None:
        self._merge_json(video_id, "metadata_", patch)

    def _merge_json(self, video_id: str, attr: str, patch: dict) -> None:
        # Only the worker that owns the video writes these columns.
        with self._sessions.begin() as session:
            row = session.get(VideoRow, video_id)
            if row is None:
                raise NotFoundError(f"Video {video_id} not found")
            setattr(row, attr, {**(getattr(row, attr) or {}), **patch})

    def mark_ready(
        self,
        video_id: str,
        remote_url: str,
        thumbnail_url: str | None = None,
        duration_seconds: float | None = None,
    ) -> bool:
        values: dict = {
            "status": VideoStatus.READY.value,
            "progress": 100,
            "progress_message": "complete",
            "remote_url": remote_url,
            "error_message": None,
        }
        if thumbnail_url is not None:
            values["thumbnail_url"] = thumbnail_url
        if duration_seconds is not None:
            values["duration_seconds"] = duration_seconds

        with self._sessions.begin() as session:
            matched = _execute(
                session,
                update(VideoRow)
                .where(VideoRow.id == video_id, VideoRow.status.in_(_ACTIVE))
                .values(**values),
            )
        if not matched:
            logger.info("Video %s no longer active; ready write skipped", video_id)
        return matched == 1

    def mark_failed(self, video_id: str, error: str) -> bool:
        """Terminal failure. Progress stays where it was."""
        with self._sessions.begin() as session:
            matched = _execute(
                session,
                update(VideoRow)
                .where(
                    VideoRow.id == video_id,
                    VideoRow.status.in_([VideoStatus.DRAFT.value, *_ACTIVE]),
                )
                .values(
                    status=VideoStatus.FAILED.value,
                    progress_message="failed",
                    error_message=error[:2000],
                ),
            )
        return matched == 1

    def cancel(self, video_id: str) -> bool:
        with self._sessions.begin() as session:
            matched = _execute(
                session,
                update(VideoRow)
                .where(
                    VideoRow.id == video_id,
                    VideoRow.status.in_([s.value for s in CANCELLABLE_STATUSES]),
                )
                .values(status=VideoStatus.CANCELLED.value, progress_message="cancelled"),
            )
        return matched == 1


class BatchRepository:
    """Persistence for BatchJob parents and their items."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._sessions = session_factory

    def create(
        self,
        user_id: str,
        batch_type: str,
        items: list[dict],
        name: str | None = None,
        config: dict | None = None,
    ) -> tuple[BatchJob, list[BatchJobItem]]:
        """Insert the parent and every item in one transaction."""
        with self._sessions.begin() as session:
            batch = BatchJobRow(
                user_id=user_id,
                type=str(batch_type),
                name=name,
                status=BatchStatus.PENDING.value,
                total_count=len(items),
                completed_count=0,
                failed_count=0,
                config=config or {},
            )
            session.add(batch)
            session.flush()
            rows = [
                BatchJobItemRow(
                    batch_id=batch.id,
                    item_index=i,
                    status=BatchItemStatus.PENDING.value,
                    config=item,
                )
                for i, item in enumerate(items)
            ]
            session.add_all(rows)
            session.flush()
            session.refresh(batch)
            return (
                BatchJob.model_validate(batch),
                [BatchJobItem.model_validate(r) for r in rows],
            )

    def get(self, batch_id: str) -> BatchJob:
        with self._sessions() as session:
            row = session.get(BatchJobRow, batch_id)
            if row is None:
                raise NotFoundError(f"Batch {batch_id} not found")
            return BatchJob.model_validate(row)

    def list_items(self, batch_id: str, status: BatchItemStatus | None = None) -> list[BatchJobItem]:
        stmt = (
            select(BatchJobItemRow)
            .where(BatchJobItemRow.batch_id == batch_id)
            .order_by(BatchJobItemRow.item_index)
        )
        if status is not None:
            stmt = stmt.where(BatchJobItemRow.status == status.value)
        with self._sessions() as session:
            return [BatchJobItem.model_validate(r) for r in session.scalars(stmt)]

    def mark_started(self, batch_id: str) -> bool:
        with self._sessions.begin() as session:
            matched = _execute(
                session,
                update(BatchJobRow)
                .where(BatchJobRow.id == batch_id, BatchJobRow.status == BatchStatus.PENDING.value)
                .values(status=BatchStatus.PROCESSING.value, started_at=datetime.now(UTC)),
            )
        return matched == 1

    def claim_item(self, batch_id: str, item_index: int, video: dict) -> str | None:
        """Flip a pending item to processing and create its Video in the same transaction.

        Returns the new video id, or None when the item was already claimed.
        """
        with self._sessions.begin() as session:
            matched = _execute(
                session,
                update(BatchJobItemRow)
                .where(
                    BatchJobItemRow.batch_id == batch_id,
                    BatchJobItemRow.item_index == item_index,
                    BatchJobItemRow.status == BatchItemStatus.PENDING.value,
                )
                .values(status=BatchItemStatus.PROCESSING.value),
            )
            if not matched:
                return None

            row = VideoRow(batch_id=batch_id, progress=0, **{"metadata_": {}, **video})
            session.add(row)
            session.flush()
            _execute(
                session,
                update(BatchJobItemRow)
                .where(
                    BatchJobItemRow.batch_id == batch_id,
                    BatchJobItemRow.item_index == item_index,
                )
                .values(video_id=row.id),
            )
            return row.id

    def record_outcome(
        self, batch_id: str, item_index: int, success: bool, error: str | None = None
    ) -> bool:
        """Count one child's terminal outcome exactly once.

        The item flip guards against duplicate delivery; the counter bump is an
        in-database increment; the parent goes terminal once every child has
        reported, ``failed`` only if all of them failed.
        """
        now = datetime.now(UTC)
        item_status = BatchItemStatus.COMPLETED if success else BatchItemStatus.FAILED
        with self._sessions.begin() as session:
            flipped = _execute(
                session,
                update(BatchJobItemRow)
                .where(
                    BatchJobItemRow.batch_id == batch_id,
                    BatchJobItemRow.item_index == item_index,
                    BatchJobItemRow.status.in_(_OPEN_ITEM),
                )
                .values(
                    status=item_status.value,
                    error_message=None if success else (error or "failed")[:2000],
                    completed_at=now,
                ),
            )
            if not flipped:
                return False

            counter = BatchJobRow.completed_count if success else BatchJobRow.failed_count
            _execute(
                session,
                update(BatchJobRow)
                .where(BatchJobRow.id == batch_id)
                .values({counter: counter + 1}),
            )
            _execute(
                session,
                update(BatchJobRow)
                .where(
                    BatchJobRow.id == batch_id,
                    BatchJobRow.status.notin_(_TERMINAL_BATCH),
                    BatchJobRow.completed_count + BatchJobRow.failed_count
                    >= BatchJobRow.total_count,
                )
                .values(
                    status=case(
                        (
                            BatchJobRow.failed_count >= BatchJobRow.total_count,
                            BatchStatus.FAILED.value,
                        ),
                        else_=BatchStatus.COMPLETED.value,
                    ),
                    completed_at=now,
                ),
            )
        return True
