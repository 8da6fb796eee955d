"""
Core Module - Retry Policy.

============================================================
RESPONSIBILITY
============================================================
Bounded retry with a fixed list of backoff delays.

Shared by the database backend (every repository operation) and
the reporting agent (every outbound send).

============================================================
POLICY
============================================================
1. Check the context at the top of each attempt
2. Run the operation once; return on success
3. Cancellation errors -> raise immediately
4. Transient errors -> wait delays[i], try again
5. Anything else -> raise immediately, no delay
6. After len(delays) + 1 attempts -> raise the last error

============================================================
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from core.context import OperationContext
from core.exceptions import MetricsException, OperationCancelled


logger = logging.getLogger(__name__)

T = TypeVar("T")


RETRY_DELAYS = (1.0, 3.0, 5.0)
"""Backoff delays in seconds; attempts = len(RETRY_DELAYS) + 1."""


def is_transient_error(error: BaseException) -> bool:
    """Default classifier: only errors classified TRANSIENT are retried."""
    return isinstance(error, MetricsException) and error.is_transient


def with_retry(
    operation: Callable[[], T],
    *,
    ctx: OperationContext,
    delays: Sequence[float] = RETRY_DELAYS,
    is_transient: Callable[[BaseException], bool] = is_transient_error,
    sleep: Optional[Callable[[float], None]] = None,
    operation_name: str = "operation",
) -> T:
    """
    Run `operation` under the retry policy.

    Args:
        operation: Zero-argument callable doing one attempt
        ctx: Operation context, checked before every attempt
        delays: Ordered backoff delays
        is_transient: Classifier deciding which errors are retried
        sleep: Waiting function; defaults to ctx.wait so cancellation
            interrupts the backoff
        operation_name: Name used in log records

    Returns:
        The operation's result

    Raises:
        OperationCancelled: Context done before an attempt
        Exception: The first non-transient error, or the last transient
            error once all delays are consumed
    """
    for attempt in range(len(delays) + 1):
        ctx.check()

        try:
            return operation()
        except OperationCancelled:
            raise
        except Exception as e:
            if not is_transient(e):
                raise
            if attempt >= len(delays):
                logger.error(f"{operation_name} failed after {attempt + 1} attempts: {e}")
                raise

            delay = delays[attempt]
            logger.warning(
                f"{operation_name} attempt {attempt + 1} failed, "
                f"retrying in {delay}s: {e}"
            )
            if sleep is not None:
                sleep(delay)
            else:
                ctx.wait(delay)


async def with_retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    ctx: Optional[OperationContext] = None,
    delays: Sequence[float] = RETRY_DELAYS,
    is_transient: Callable[[BaseException], bool] = is_transient_error,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    operation_name: str = "operation",
) -> T:
    """
    Coroutine flavour of with_retry.

    asyncio.CancelledError is a BaseException and always propagates.
    """
    ctx = ctx or OperationContext.background()

    for attempt in range(len(delays) + 1):
        ctx.check()

        try:
            return await operation()
        except OperationCancelled:
            raise
        except Exception as e:
            if not is_transient(e):
                raise
            if attempt >= len(delays):
                logger.error(f"{operation_name} failed after {attempt + 1} attempts: {e}")
                raise

            delay = delays[attempt]
            logger.warning(
                f"{operation_name} attempt {attempt + 1} failed, "
                f"retrying in {delay}s: {e}"
            )
            await sleep(delay)

