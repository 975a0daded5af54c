"""Error handling middleware."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from reelcast.models.errors import (
    ErrorResponse,
    NotFoundError,
    ProviderRejected,
    ProviderUnavailable,
    ReelcastError,
    ValidationError,
)

logger = logging.getLogger(__name__)


async def reelcast_error_handler(request: Request, exc: ReelcastError) -> JSONResponse:
    """Handle ReelcastError exceptions."""
    status_code = _get_status_code(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    response = ErrorResponse.from_exception(exc, guidance=_get_guidance(exc))
    return JSONResponse(status_code=status_code, content=response.model_dump())


def _get_status_code(exc: ReelcastError) -> int:
    """Map error type to HTTP status code."""
    if isinstance(exc, ValidationError):
        return 400
    elif isinstance(exc, NotFoundError):
        return 404
    elif isinstance(exc, ProviderRejected):
        return 502
    elif isinstance(exc, ProviderUnavailable):
        return 503
    return 500


def _get_guidance(exc: ReelcastError) -> str:
    """Generate actionable guidance based on error type."""
    if isinstance(exc, ValidationError):
        return "Check the request fields and try again."
    if isinstance(exc, NotFoundError):
        return "Check the id; the record may have been deleted."
    if exc.retryable:
        return "The provider is temporarily unavailable. Please try again shortly."
    return "Please try again or contact support."
