"""
Remote Call Retry Policy.

Transient failures (network errors, timeouts, HTTP 5xx and 429) are retried a
bounded number of times with exponential backoff. Logical failures (other 4xx
such as bad request or conflict) are raised immediately.
"""

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from config import logger, settings
from errors import ObjectStoreError


def is_transient_status(status: int) -> bool:
    return status >= 500 or status == 429


def is_transient(exc: BaseException) -> bool:
    """Decide whether a failed remote call is worth retrying."""
    return isinstance(exc, ObjectStoreError) and exc.transient


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        {
            "message": "Retrying transient remote failure",
            "attempt": retry_state.attempt_number,
            "error": str(exc),
        }
    )


transient_retry = retry(
    retry=retry_if_exception(is_transient),
    stop=stop_after_attempt(settings.max_retries),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    before_sleep=_log_retry,
    reraise=True,
)
