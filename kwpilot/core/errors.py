"""KWPilot: Keyword-source error classification."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional

import httpx


class ApiErrorType(str, Enum):
    AUTH = "AUTH"
    QUOTA_EXHAUSTED = "QUOTA_EXHAUSTED"
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK = "NETWORK"
    INVALID_REQUEST = "INVALID_REQUEST"
    UNKNOWN = "UNKNOWN"


QUOTA_RETRY_AFTER = 300
RATE_LIMIT_RETRY_AFTER = 60

_HTTP_STATUS = {
    ApiErrorType.AUTH: 401,
    ApiErrorType.QUOTA_EXHAUSTED: 429,
    ApiErrorType.RATE_LIMITED: 429,
    ApiErrorType.NETWORK: 502,
    ApiErrorType.INVALID_REQUEST: 400,
}

_AUTH_MARKERS = ("unauthenticated", "invalid_grant", "refresh token", "permission_denied", "unauthorized")
_QUOTA_MARKERS = ("quota", "exhausted", "credits", "insufficient credit")


@dataclass
class SourceError:
    """A classified failure from Google Ads or Keywords Everywhere."""

    type: ApiErrorType
    message: str
    is_retryable: bool
    retry_after_seconds: Optional[int] = None
    status_code: int = 0
    source: str = ""

    @property
    def http_status(self) -> int:
        if self.type in _HTTP_STATUS:
            return _HTTP_STATUS[self.type]
        return 503 if self.status_code == 503 else 500

    def to_dict(self) -> dict:
        data = asdict(self)
        data["type"] = self.type.value
        return data


class KeywordSourceError(Exception):
    """Every keyword source failed for a fetch-ideas request."""

    def __init__(self, error: SourceError, queue_id: Optional[int] = None):
        self.error = error
        self.queue_id = queue_id
        super().__init__(error.message)


def classify_error(error: Exception, source: str = "") -> SourceError:
    status = getattr(error, "status_code", 0) or 0
    code = str(getattr(error, "error_code", "") or "").upper()
    message = str(error) or error.__class__.__name__
    lowered = message.lower()

    def build(kind: ApiErrorType, retryable: bool, retry_after: Optional[int] = None) -> SourceError:
        return SourceError(kind, message, retryable, retry_after, status, source)

    if status in (401, 403) or code in ("UNAUTHENTICATED", "NO_REFRESH_TOKEN") or any(
        m in lowered for m in _AUTH_MARKERS
    ):
        return build(ApiErrorType.AUTH, False)
    if status == 402 or code == "RESOURCE_EXHAUSTED" or any(m in lowered for m in _QUOTA_MARKERS):
        return build(ApiErrorType.QUOTA_EXHAUSTED, True, QUOTA_RETRY_AFTER)
    if status == 429:
        return build(ApiErrorType.RATE_LIMITED, True, RATE_LIMIT_RETRY_AFTER)
    if isinstance(error, (httpx.RequestError, TimeoutError)) or "connection failed" in lowered:
        return build(ApiErrorType.NETWORK, True)
    if status >= 500 and status != 503:
        return build(ApiErrorType.NETWORK, True)
    if status in (400, 404) or isinstance(error, ValueError):
        return build(ApiErrorType.INVALID_REQUEST, False)
    return build(ApiErrorType.UNKNOWN, False)
