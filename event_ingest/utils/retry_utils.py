"""
Retry policy shared by every external call.

One `RetryPolicy` describes max attempts, the backoff curve, which errors are
worth retrying and how to read a provider-suggested delay. Model providers,
the database handlers and the transport bridge all run their calls through it
instead of hand-rolled sleep loops.
"""

import asyncio
import errno
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import wraps
from typing import TypeVar

from asyncpg.exceptions import ConnectionDoesNotExistError
from sqlalchemy.exc import DBAPIError, OperationalError

from event_ingest.utils.logger import setup_logger

logger = setup_logger("retry_utils")

T = TypeVar("T")

MIN_SUGGESTED_DELAY_SECONDS = 0.5
MAX_SUGGESTED_DELAY_SECONDS = 60.0

_RETRY_HINT_PATTERN = re.compile(
    r"try again in\s+(\d+(?:\.\d+)?)\s*(ms|s|sec|seconds)?", re.IGNORECASE
)


def _never(_: BaseException) -> bool:
    return False


def _no_suggestion(_: BaseException) -> float | None:
    return None


@dataclass
class RetryPolicy:
    """
    Bounded exponential backoff.

    `max_attempts` counts the first call. The delay before retry number n
    (0-based) is `min(max_delay, base_delay * backoff_factor ** n)` unless
    `suggested_delay` returns a value for the error, in which case that value
    is used as-is.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    is_retryable: Callable[[BaseException], bool] = field(default=_never)
    suggested_delay: Callable[[BaseException], float | None] = field(
        default=_no_suggestion
    )
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    def delay_for(self, retry_index: int, error: BaseException) -> float:
        suggested = self.suggested_delay(error)
        if suggested is not None:
            return suggested
        return min(self.max_delay, self.base_delay * self.backoff_factor**retry_index)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        description: str = "operation",
        log_prefix: str = "",
    ) -> T:
        """Run `operation` until it succeeds, raises a non-retryable error or attempts run out."""
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as e:
                if attempt >= self.max_attempts or not self.is_retryable(e):
                    if attempt > 1:
                        logger.error(
                            f"{log_prefix}{description} failed after {attempt} attempt(s): "
                            f"{type(e).__name__}: {e}"
                        )
                    raise
                delay = self.delay_for(attempt - 1, e)
                logger.warning(
                    f"{log_prefix}{description} failed (attempt {attempt}/{self.max_attempts}) "
                    f"due to {type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
                )
                await self.sleep(delay)
                attempt += 1


def with_retry(policy: RetryPolicy, description: str | None = None):
    """Decorator form of `RetryPolicy.run` for coroutine functions."""

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await policy.run(
                lambda: func(*args, **kwargs), description=description or func.__name__
            )

        return wrapper

    return decorator


def parse_suggested_delay(message: str | None) -> float | None:
    """
    Read a "try again in 850ms" / "try again in 2.5s" hint from an error message.

    The result is clamped to [0.5s, 60s]. Returns None when no hint is present.
    """
    if not message:
        return None
    match = _RETRY_HINT_PATTERN.search(message)
    if not match:
        return None
    value = float(match.group(1))
    unit = (match.group(2) or "s").lower()
    seconds = value / 1000.0 if unit == "ms" else value
    return max(MIN_SUGGESTED_DELAY_SECONDS, min(MAX_SUGGESTED_DELAY_SECONDS, seconds))


def is_retryable_status(status_code: int | None) -> bool:
    """Rate limits, request timeouts and server errors are transient."""
    if status_code is None:
        return False
    return status_code in (408, 429) or status_code >= 500


def is_retryable_db_error(e: BaseException) -> bool:
    """
    Classify database errors for retry decisions.

    Lost connections and network-level OS errors are transient; constraint
    violations and programming errors are not.
    """
    if isinstance(e, DBAPIError) and isinstance(
        getattr(e, "orig", None), ConnectionDoesNotExistError
    ):
        logger.info("ConnectionDoesNotExistError detected as retryable.")
        return True
    if isinstance(e, OperationalError):
        return True
    if isinstance(e, DBAPIError) and e.connection_invalidated:
        return True
    if isinstance(e, ConnectionRefusedError | TimeoutError):
        return True
    if isinstance(e, OSError) and e.errno in (
        errno.ETIMEDOUT,
        errno.ECONNREFUSED,
        errno.EHOSTUNREACH,
        errno.ENETUNREACH,
    ):
        logger.info(f"OSError errno {e.errno} detected as retryable.")
        return True
    return False


def db_retry_policy(max_attempts: int = 3) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=max_attempts,
        base_delay=1.0,
        max_delay=8.0,
        is_retryable=is_retryable_db_error,
    )
