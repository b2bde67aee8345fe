"""
Centralized error classification for retry routing.

Provides consistent classification of errors to determine whether a failed
upload should be retried with backoff (transient) or go straight to the
terminal failed state (permanent).
"""

import logging
from typing import Type

from worker.errors import TransientError, PermanentError


# HTTP status codes that indicate transient (retry-able) errors
# 408: Request timeout
# 429: Rate limited - retry after backoff
# 5xx: Server errors - usually temporary
TRANSIENT_CODES = frozenset({408, 429, 500, 502, 503, 504})

# HTTP status codes that indicate permanent (non-retry-able) errors
# 400: Bad request - data issue
# 401: Unauthorized - auth config issue
# 403: Forbidden - permission issue
# 404: Not found - upload endpoint doesn't exist
# 405: Method not allowed - API misuse
# 409: Conflict - upload already exists under another id
# 410: Gone - endpoint permanently removed
# 413: Payload too large - will never fit
# 422: Unprocessable entity - validation failure
PERMANENT_CODES = frozenset({400, 401, 403, 404, 405, 409, 410, 413, 422})

# Module logger
logger = logging.getLogger(__name__)


def classify_http_error(status_code: int) -> Type[Exception]:
    """
    Classify an HTTP status code as transient or permanent error.

    Args:
        status_code: HTTP response status code

    Returns:
        TransientError class for retry-able errors
        PermanentError class for non-retry-able errors
    """
    if status_code in TRANSIENT_CODES:
        logger.debug(f"HTTP {status_code} classified as transient")
        return TransientError

    if status_code in PERMANENT_CODES:
        logger.debug(f"HTTP {status_code} classified as permanent")
        return PermanentError

    if 400 <= status_code < 500:
        # Unknown 4xx = permanent (client error, unlikely to change)
        logger.debug(f"HTTP {status_code} (unknown 4xx) classified as permanent")
        return PermanentError

    if status_code >= 500:
        logger.debug(f"HTTP {status_code} (unknown 5xx) classified as transient")
        return TransientError

    # 1xx/3xx shouldn't reach here; retrying is the safer default
    logger.debug(f"HTTP {status_code} (unexpected) classified as transient")
    return TransientError


def classify_exception(exc: Exception) -> Type[Exception]:
    """
    Classify an exception as transient or permanent error.

    Handles various exception types:
    - Already classified: Return same type
    - HTTP errors carrying a response: Classify by status code
    - Network errors: Transient (ConnectionError, TimeoutError, OSError)
    - Missing content: Permanent (FileNotFoundError, IsADirectoryError)
    - Validation errors: Permanent (ValueError, TypeError, KeyError, AttributeError)
    - Unknown: Transient (safer, allows retry)

    Args:
        exc: The exception to classify

    Returns:
        TransientError class for retry-able errors
        PermanentError class for non-retry-able errors
    """
    if isinstance(exc, TransientError):
        return TransientError

    if isinstance(exc, PermanentError):
        return PermanentError

    # HTTP response attached (httpx.HTTPStatusError, requests.HTTPError, ...)
    response = getattr(exc, 'response', None)
    if response is not None:
        status_code = getattr(response, 'status_code', None)
        if status_code is not None:
            logger.debug(f"Exception has HTTP response with status {status_code}")
            return classify_http_error(status_code)

    # Local content gone: retrying will not bring it back
    if isinstance(exc, (FileNotFoundError, IsADirectoryError, PermissionError)):
        logger.debug(f"Content error classified as permanent: {type(exc).__name__}")
        return PermanentError

    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        logger.debug(f"Network error classified as transient: {type(exc).__name__}")
        return TransientError

    if isinstance(exc, (ValueError, TypeError, KeyError, AttributeError)):
        logger.debug(f"Validation error classified as permanent: {type(exc).__name__}")
        return PermanentError

    logger.debug(f"Unknown exception classified as transient: {type(exc).__name__}")
    return TransientError
