"""
Retry engine for remote calls.

Only server errors are worth retrying: a 5xx usually means the platform is
having a bad moment, while a 4xx, a body that is not JSON or a missing header
will fail the same way every time.
"""
import time
from typing import Callable, TypeVar

import httpx
import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from replay.errors import ConfigurationError

# Set up structured logger
logger = structlog.get_logger()

R = TypeVar("R")

DEFAULT_BASE_DELAY = 0.5  # seconds
DEFAULT_JITTER = 0.25  # seconds


def is_retryable(exc: BaseException) -> bool:
    """True iff ``exc`` is an HTTP response error with a 5xx status."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.is_server_error
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    sleep_seconds = retry_state.next_action.sleep if retry_state.next_action else None
    logger.warning(
        "Transient remote failure, retrying",
        attempt=retry_state.attempt_number,
        sleep_seconds=sleep_seconds,
        error=str(exc),
    )


def retry_request(
    max_attempts: int,
    action: Callable[[], R],
    *,
    base_delay: float = DEFAULT_BASE_DELAY,
    jitter: float = DEFAULT_JITTER,
    sleep: Callable[[float], None] = time.sleep,
) -> R:
    """
    Run ``action`` up to ``max_attempts`` times.

    Before retry ``i`` the engine sleeps ``base_delay * 2**(i-1)`` seconds plus
    up to ``jitter`` seconds of random jitter. Non retryable failures are
    re-raised straight away; when the attempts run out the last failure is
    re-raised.

    Args:
        max_attempts: Total number of calls allowed, at least 1
        action: Zero argument callable performing the remote call
        base_delay: Delay before the first retry in seconds
        jitter: Upper bound of the uniform jitter added to every delay
        sleep: Blocking sleep function (injectable for tests)

    Returns:
        Whatever ``action`` returns on its first successful call

    Raises:
        ConfigurationError: If ``max_attempts`` is not positive
    """
    if max_attempts <= 0:
        raise ConfigurationError("max_retries must be greater than zero")

    wait = wait_exponential(multiplier=base_delay)
    if jitter > 0:
        wait = wait + wait_random(0, jitter)

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait,
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )
    return retrying(action)
