"""Error hierarchy and error response models."""

from pydantic import BaseModel, Field


class ReelcastError(Exception):
    """Base error for all Reelcast errors."""

    retryable = False

    def __init__(self, message: str, component: str = "", details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.component = component
        self.details = details or {}


class ValidationError(ReelcastError):
    """Malformed request or job payload. Never retried."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="validation", details=details)


class NotFoundError(ReelcastError):
    """A referenced record does not exist."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="store", details=details)


class ProviderRejected(ReelcastError):
    """The provider answered with a non-success status for a well-formed call."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str = "",
        provider: str = "",
    ):
        super().__init__(
            message,
            component=provider or "provider",
            details={"status_code": status_code, "body": body[:2000]},
        )
        self.status_code = status_code
        self.body = body


class ProviderUnavailable(ReelcastError):
    """Network failure, timeout, or 5xx from a provider."""

    retryable = True

    def __init__(self, message: str, provider: str = "", details: dict | None = None):
        super().__init__(message, component=provider or "provider", details=details)


class ProviderTaskFailed(ReelcastError):
    """The provider reported the remote task as failed."""

    def __init__(self, message: str, provider: str = "", details: dict | None = None):
        super().__init__(message, component=provider or "provider", details=details)


class GenerationTimedOut(ReelcastError):
    """The poll budget was exhausted before the remote task finished."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="poller", details=details)


class PipelineStageError(ReelcastError):
    """A post-processing stage failed."""

    def __init__(self, message: str, stage: str, details: dict | None = None):
        super().__init__(message, component="pipeline", details={"stage": stage, **(details or {})})
        self.stage = stage


class RenderingError(ReelcastError):
    """ffmpeg or ffprobe failed."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, component="rendering", details=details)


class ErrorResponse(BaseModel):
    """Standardized error response for API."""

    error_type: str = Field(..., description="Error category")
    component: str = Field(default="", description="Component that raised the error")
    message: str = Field(..., description="Human-readable error message")
    details: dict = Field(default_factory=dict)
    actionable_guidance: str = Field(default="", description="Suggested user action")
    retry_possible: bool = Field(default=False)

    @classmethod
    def from_exception(cls, exc: ReelcastError, guidance: str = "") -> "ErrorResponse":
        return cls(
            error_type=type(exc).__name__,
            component=exc.component,
            message=exc.message,
            details=exc.details,
            actionable_guidance=guidance,
            retry_possible=exc.retryable,
        )
