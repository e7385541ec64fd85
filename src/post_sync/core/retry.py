"""Retry with backoff for remote API calls.

Only ``TransientRemoteError`` is retried.  A ``QuotaExceededError``
(daily quota exhausted) is handled separately: the call sleeps until one
minute past the next local midnight, when the quota resets, and that
wait does not consume an attempt.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, TypeVar

from ..errors import QuotaExceededError, TransientRemoteError

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including first try)
        delay: Initial delay in seconds
        backoff: "fixed" or "exponential" (delay doubles after each retry)
        max_delay: Stop retrying once the next delay would exceed this
        max_quota_waits: How many midnight waits are allowed per call
    """

    max_attempts: int = 4
    delay: float = 15.0
    backoff: str = "exponential"
    max_delay: float | None = 600.0
    max_quota_waits: int = 1


DEFAULT_POLICY = RetryPolicy()
PUBLISH_POLICY = RetryPolicy(max_attempts=10, delay=60.0)
NO_RETRY = RetryPolicy(max_attempts=1, max_quota_waits=0)


def seconds_until_quota_reset(now: datetime | None = None) -> float:
    """Seconds from *now* until 00:01:00 local time on the next day."""
    now = now or datetime.now()
    target = (now + timedelta(days=1)).replace(
        hour=0, minute=1, second=0, microsecond=0
    )
    return (target - now).total_seconds()


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy = DEFAULT_POLICY,
    sleep: Callable[[float], None] = time.sleep,
    now: Callable[[], datetime] = datetime.now,
) -> T:
    """Call *fn*, retrying transient remote failures.

    Args:
        fn: Zero-argument callable performing one remote request.
        policy: Attempt count and delay schedule.
        sleep: Sleep function (injected by tests).
        now: Clock used to compute the quota reset time.

    Returns:
        Whatever *fn* returns.

    Raises:
        The last error from *fn* once retries are exhausted, or
        immediately for anything that is not a ``TransientRemoteError``.
    """
    delay = policy.delay
    attempt = 1
    quota_waits = 0

    while True:
        try:
            return fn()
        except QuotaExceededError as exc:
            if quota_waits >= policy.max_quota_waits:
                raise
            quota_waits += 1
            wait = seconds_until_quota_reset(now())
            logger.warning(
                "WeChat API daily quota reached (%s). Waiting %.0f seconds "
                "until the quota resets before retrying...",
                exc,
                wait,
            )
            sleep(wait)
        except TransientRemoteError as exc:
            if attempt >= policy.max_attempts:
                raise
            if policy.max_delay is not None and delay > policy.max_delay:
                logger.error(
                    "Next retry delay %.0fs exceeds limit %.0fs. Stopping retry.",
                    delay,
                    policy.max_delay,
                )
                raise
            logger.warning(
                "Attempt %d/%d failed: %s. Retrying in %g seconds...",
                attempt,
                policy.max_attempts,
                exc,
                delay,
            )
            sleep(delay)
            attempt += 1
            if policy.backoff == "exponential":
                delay *= 2
