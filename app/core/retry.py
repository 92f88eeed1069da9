"""
Bounded retry with exponential backoff for critical writes.

Used by every code path where a transient failure must not silently drop
work: identity verification updates and checkout settlement. The helper
never raises; it returns a ServiceResult carrying either the operation's
return value or the last exception.

Delay schedule (base_delay_ms=1000):
    attempt 1 fails -> sleep 1s
    attempt 2 fails -> sleep 2s
    attempt 3 fails -> give up

Usage:
    from core.retry import retry_with_backoff

    result = retry_with_backoff(
        lambda: update_verification(user, session),
        max_attempts=3,
        base_delay_ms=1000,
        operation_name="identity_verification_update",
    )
    if not result:
        logger.critical("Needs manual intervention", extra={...})
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, TypeVar

from core.services import ServiceResult

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay_ms(attempt: int, base_delay_ms: int) -> int:
    """Delay before retrying after the given 1-based failed attempt."""
    return base_delay_ms * (2 ** (attempt - 1))


def retry_with_backoff(
    operation: Callable[[], T],
    max_attempts: int = 3,
    base_delay_ms: int = 1000,
    retry_if: Callable[[Exception], bool] | None = None,
    operation_name: str = "operation",
) -> ServiceResult[T]:
    """
    Run ``operation`` up to ``max_attempts`` times.

    Args:
        operation: Zero-argument callable to execute
        max_attempts: Total number of attempts (>= 1)
        base_delay_ms: First backoff delay; doubles after each failure
        retry_if: Predicate deciding whether an exception is worth retrying.
            Exceptions it rejects end the loop immediately.
        operation_name: Label used in log records

    Returns:
        ServiceResult.success(value) or ServiceResult.from_exception(last_error)
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return ServiceResult.success(operation())
        except Exception as e:
            last_error = e
            retryable = retry_if is None or retry_if(e)
            log_extra = {
                "operation": operation_name,
                "attempt": attempt,
                "max_attempts": max_attempts,
                "error_type": type(e).__name__,
                "retryable": retryable,
            }

            if not retryable or attempt == max_attempts:
                logger.error(
                    f"{operation_name} failed after {attempt} attempt(s): {e}",
                    extra=log_extra,
                )
                break

            delay_ms = backoff_delay_ms(attempt, base_delay_ms)
            logger.warning(
                f"{operation_name} attempt {attempt} failed, retrying in {delay_ms}ms: {e}",
                extra={**log_extra, "delay_ms": delay_ms},
            )
            time.sleep(delay_ms / 1000)

    return ServiceResult.from_exception(last_error)


__all__ = [
    "backoff_delay_ms",
    "retry_with_backoff",
]
