"""KWPilot: Domain error → HTTPException mapping for route handlers."""

from fastapi import HTTPException

from kwpilot.ai.base_provider import AIProviderError
from kwpilot.connectors.http_client import UpstreamAPIError
from kwpilot.core.errors import KeywordSourceError
from kwpilot.core.logging import get_logger

logger = get_logger("api.errors")


def _upstream_status(status_code: int) -> int:
    if status_code in (401, 403):
        return 401
    if status_code in (402, 429):
        return 429
    if status_code == 503:
        return 503
    if status_code in (400, 404):
        return 400
    return 502


def to_http_exception(error: Exception, action: str = "Request") -> HTTPException:
    """Translate a store, pipeline or upstream error into an HTTPException."""
    if isinstance(error, HTTPException):
        return error
    if isinstance(error, KeywordSourceError):
        detail = {"message": str(error), **error.error.to_dict()}
        if error.queue_id is not None:
            detail["queue_id"] = error.queue_id
        return HTTPException(status_code=error.error.http_status, detail=detail)
    if isinstance(error, AIProviderError):
        status = 503 if error.status_code == 503 else 502
        return HTTPException(status_code=status, detail=f"{action} failed: {error}")
    if isinstance(error, UpstreamAPIError):
        return HTTPException(
            status_code=_upstream_status(error.status_code), detail=f"{action} failed: {error}"
        )
    if isinstance(error, LookupError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ValueError):
        return HTTPException(status_code=400, detail=str(error))

    logger.error(f"❌ {action} failed: {error}")
    return HTTPException(status_code=500, detail=f"{action} failed: {str(error)}")
