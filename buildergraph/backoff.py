"""Async polling, timeout and retry combinators.

These helpers know nothing about the ledger or the domain. All delays are in
seconds. ``sleep`` is injectable so tests can run without real waiting.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterator, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]


class PollingError(Exception):
    """The check kept failing until the attempt budget ran out."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class PollingExhausted(PollingError):
    """Every attempt reported "not ready yet"."""


class OperationTimeout(Exception):
    """An awaited operation did not finish within its time limit."""

    def __init__(self, message: str, limit: float) -> None:
        super().__init__(message)
        self.limit = limit


def backoff_delays(
    initial_delay: float,
    factor: float = 1.5,
    max_delay: float = 10.0,
) -> Iterator[float]:
    """Yield ``initial_delay`` then ``min(prev * factor, max_delay)`` forever.

    The sequence is non-decreasing for ``factor >= 1`` and never exceeds
    ``max_delay``.
    """
    if factor < 1:
        raise ValueError("factor must be >= 1")
    delay = min(initial_delay, max_delay)
    while True:
        yield delay
        delay = min(delay * factor, max_delay)


async def _call(fn: Callable[[], Any]) -> Any:
    result = fn()
    if inspect.isawaitable(result):
        result = await result
    return result


async def poll_until(
    check: Callable[[], Any],
    max_attempts: int = 30,
    initial_delay: float = 2.0,
    *,
    max_delay: float = 10.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: SleepFn = asyncio.sleep,
) -> Any:
    """Call ``check`` until it returns something other than ``None``.

    ``check`` may be a plain function or a coroutine function. Errors listed
    in ``retry_on`` are retried on the same schedule; on the last attempt they
    are raised as :class:`PollingError`. Any other error propagates at once.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    delays = backoff_delays(initial_delay, max_delay=max_delay)
    for attempt in range(1, max_attempts + 1):
        try:
            result = await _call(check)
        except retry_on as exc:
            if attempt == max_attempts:
                raise PollingError(
                    f"Polling failed after {attempt} attempts: {exc}", attempts=attempt
                ) from exc
            logger.debug("Poll attempt %d/%d failed: %s", attempt, max_attempts, exc)
        else:
            if result is not None:
                return result
            if attempt == max_attempts:
                break
        await sleep(next(delays))

    raise PollingExhausted(
        f"Polling gave up after {max_attempts} attempts without a result",
        attempts=max_attempts,
    )


async def with_timeout(
    awaitable: Awaitable[T],
    limit: float,
    message: str = "Operation timed out",
) -> T:
    """Await ``awaitable`` for at most ``limit`` seconds.

    On expiry the underlying task is cancelled but not awaited, so the caller
    is released promptly even if the operation ignores cancellation.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=limit)
    except asyncio.CancelledError:
        task.cancel()
        raise
    if task in done:
        return task.result()

    task.cancel()
    # Retrieve the eventual exception so asyncio does not warn about it.
    task.add_done_callback(_consume_result)
    raise OperationTimeout(f"{message} after {limit:g}s", limit=limit)


def _consume_result(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()


async def retry(
    operation: Callable[[], Any],
    max_retries: int = 3,
    delay: float = 1.0,
    *,
    linear: bool = False,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
    sleep: SleepFn = asyncio.sleep,
) -> Any:
    """Run ``operation`` with up to ``max_retries`` retries on failure.

    The wait between attempts is ``delay`` or, with ``linear=True``,
    ``delay * attempt``. The last error is re-raised unchanged.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await _call(operation)
        except retry_on as exc:
            if attempt > max_retries:
                raise
            if on_retry is not None:
                on_retry(attempt, exc)
            await sleep(delay * attempt if linear else delay)
