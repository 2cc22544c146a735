"""Bounded retries with per-attempt deadlines and exponential backoff."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from org_headshots.domain.errors import (
    NoActiveSessionError,
    OperationTimeoutError,
    RetryAttempt,
    RetryExhaustedError,
    is_retryable,
)

T = TypeVar("T")

_logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Runs an async operation with bounded attempts, a timeout and backoff."""

    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 3.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt after `attempt` (1-based)."""
        return min(
            self.base_delay_seconds * 2 ** (attempt - 1), self.max_delay_seconds
        )

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        name: str,
        max_attempts: int = 2,
        timeout_seconds: float = 4.0,
    ) -> T:
        """Run `operation` until it succeeds or the attempts run out.

        Non-retryable errors are re-raised unchanged. When every attempt fails
        a RetryExhaustedError carrying the attempt history is raised.
        """
        attempts: list[RetryAttempt] = []
        for attempt in range(1, max_attempts + 1):
            try:
                result = await _run_with_deadline(operation, name, timeout_seconds)
            except Exception as exc:
                if not is_retryable(exc):
                    _logger.info("%s: not retrying after %s", name, exc)
                    raise
                next_delay = self.delay_for(attempt) if attempt < max_attempts else None
                attempts.append(
                    RetryAttempt(
                        attempt_number=attempt, last_error=exc, next_delay=next_delay
                    )
                )
                _logger.warning(
                    "%s failed (attempt %s/%s): %s", name, attempt, max_attempts, exc
                )
                if next_delay is None:
                    break
                await self.sleep(next_delay)
                continue
            if attempt > 1:
                _logger.info("%s succeeded on attempt %s", name, attempt)
            return result
        raise RetryExhaustedError(name, attempts)


async def _run_with_deadline(
    operation: Callable[[], Awaitable[T]], name: str, timeout_seconds: float
) -> T:
    # The abandoned attempt keeps running; only its outcome is ignored.
    task = asyncio.ensure_future(operation())
    done, _ = await asyncio.wait({task}, timeout=timeout_seconds)
    if task in done:
        return task.result()
    task.add_done_callback(_discard_outcome)
    raise OperationTimeoutError(f"{name} timeout after {timeout_seconds}s")


def _discard_outcome(task: "asyncio.Future[object]") -> None:
    if not task.cancelled():
        task.exception()


async def first_success(
    *factories: Callable[[], Awaitable[T | None]],
) -> T | None:
    """Run lookups concurrently and return the first non-None result.

    Losing lookups are cancelled. When nothing yields a value, None is returned
    if every failure was a missing-session signal; otherwise the first
    transient error is raised so an enclosing RetryPolicy can retry.
    """
    pending = {asyncio.ensure_future(factory()) for factory in factories}
    transient: list[BaseException] = []
    try:
        while pending:
            done, pending = await asyncio.wait(
                pending, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                error = task.exception()
                if error is None:
                    value = task.result()
                    if value is not None:
                        return value
                elif not isinstance(error, NoActiveSessionError) and is_retryable(
                    error
                ):
                    transient.append(error)
    finally:
        for task in pending:
            task.cancel()
    if transient:
        raise transient[0]
    return None
