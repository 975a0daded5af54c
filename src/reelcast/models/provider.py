"""Normalized provider request/status models."""

from enum import StrEnum

from pydantic import BaseModel, Field


class ProviderPhase(StrEnum):
    """Provider-neutral lifecycle of a remote task."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ProviderStatus(BaseModel):
    """One poll observation, already translated out of the provider's vocabulary."""

    phase: ProviderPhase
    progress: float | None = Field(default=None, description="Provider progress, 0..100")
    result_url: str | None = None
    thumbnail_url: str | None = None
    duration: float | None = None
    error: str | None = None


class PollOutcome(BaseModel):
    """What the poller hands back to the worker."""

    success: bool
    cancelled: bool = False
    result_url: str | None = None
    thumbnail_url: str | None = None
    duration: float | None = None
    attempts: int = 0
