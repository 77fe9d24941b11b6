"""
Error Classification - Map sync failures to retry decisions

Every failure raised while syncing is reduced to one of four types:
- permanent:  bad credentials, missing shop/resource. Never retried.
- rate_limit: HTTP 429 or rate-limit wording. Retried after retry_after seconds.
- retryable:  5xx, 408, timeouts, connection resets. Retried with backoff.
- unknown:    anything else. Retried with backoff, flagged for investigation.
"""
from dataclasses import dataclass
from typing import Optional
import enum
import logging

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

PERMANENT_STATUS_CODES = frozenset({401, 403})

PERMANENT_PHRASES = (
    "invalid api key",
    "invalid access token",
    "invalid credentials",
    "unauthorized",
    "forbidden",
    "not found",
    "shop not found",
    "invalid shop",
)

RETRYABLE_PHRASES = (
    "timeout",
    "timed out",
    "network",
    "econnreset",
    "econnrefused",
    "connection reset",
    "connection refused",
    "temporary",
    "temporarily",
    "unavailable",
)


class ErrorType(str, enum.Enum):
    PERMANENT = "permanent"
    RETRYABLE = "retryable"
    RATE_LIMIT = "rate_limit"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClassifiedError:
    type: ErrorType
    message: str
    retry_after: Optional[float] = None
    status_code: Optional[int] = None

    @property
    def should_retry(self) -> bool:
        return self.type != ErrorType.PERMANENT


class SyncError(Exception):
    """A classified sync failure, raised by workers to their caller"""

    def __init__(self, classified: ClassifiedError):
        super().__init__(classified.message)
        self.classified = classified

    @property
    def error_type(self) -> ErrorType:
        return self.classified.type

    @classmethod
    def permanent(cls, message: str) -> "SyncError":
        return cls(ClassifiedError(ErrorType.PERMANENT, message))


def classify(
    message: str = "",
    status_code: Optional[int] = None,
    transport_error: bool = False,
    retry_after: Optional[float] = None,
) -> ClassifiedError:
    """
    Classify a failure from its message text, HTTP status and transport flag.
    Checks run in order: rate limit, permanent, retryable, unknown.
    """
    text = (message or "").lower()
    status = status_code or 0

    if status == 429 or "rate limit" in text or "too many requests" in text:
        wait = retry_after if retry_after is not None else settings.RATE_LIMIT_DEFAULT_RETRY_AFTER
        return ClassifiedError(ErrorType.RATE_LIMIT, message or "Rate limit exceeded", wait, status_code)

    if status in PERMANENT_STATUS_CODES or any(phrase in text for phrase in PERMANENT_PHRASES):
        return ClassifiedError(ErrorType.PERMANENT, message or "Permanent error occurred", None, status_code)

    if (
        transport_error
        or status >= 500
        or status == 408
        or any(phrase in text for phrase in RETRYABLE_PHRASES)
    ):
        return ClassifiedError(ErrorType.RETRYABLE, message or "Temporary error occurred", None, status_code)

    return ClassifiedError(ErrorType.UNKNOWN, message or "Unknown error occurred", None, status_code)


def classify_exception(exc: BaseException) -> ClassifiedError:
    """
    Classify a raised exception.

    Handles:
    - SyncError: already classified, returned as-is
    - objects with status_code / retry_after (ShopifyAPIError)
    - httpx.HTTPStatusError: status from the attached response
    - httpx.TransportError, ConnectionError, TimeoutError: transport failures
    - anything else: message text only
    """
    if isinstance(exc, SyncError):
        return exc.classified

    message = str(exc) or type(exc).__name__
    status_code = getattr(exc, "status_code", None)
    retry_after = getattr(exc, "retry_after", None)

    if status_code is None and isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        header = exc.response.headers.get("Retry-After")
        if header:
            try:
                retry_after = float(header)
            except ValueError:
                retry_after = None

    transport_error = isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError))

    classified = classify(message, status_code, transport_error, retry_after)
    if classified.type == ErrorType.UNKNOWN:
        logger.warning(f"Unclassified error ({type(exc).__name__}): {message}")
    else:
        logger.debug(f"{type(exc).__name__} classified as {classified.type.value}")
    return classified
