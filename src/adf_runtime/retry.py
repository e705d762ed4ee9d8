"""Bounded retry with exponential backoff, and deadline enforcement.

Every suspending call made by the executor and the services goes through
`call_with_timeout`, and the executor wraps each step in `RetryPolicy.run`.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import TypeVar

from adf_runtime.errors import WorkflowTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _retryable(exc: BaseException) -> bool:
    return bool(getattr(exc, "retryable", True))


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Fixed attempt cap with exponentially growing delays between attempts."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 10.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")

    def delays(self) -> Iterator[float]:
        """Delays slept between consecutive attempts (`max_attempts - 1` values)."""

        delay = self.initial_delay
        for _ in range(self.max_attempts - 1):
            yield min(delay, self.max_delay)
            delay *= self.factor

    def run(
        self,
        fn: Callable[[], T],
        *,
        operation: str,
        should_retry: Callable[[BaseException], bool] = _retryable,
        sleep: Callable[[float], None] = time.sleep,
    ) -> T:
        """Call `fn` until it succeeds or a non-retryable error occurs or attempts run out.

        Attempts never overlap: after a `WorkflowTimeout` the next attempt waits
        for the abandoned call to settle, for at most one more deadline. If it is
        still running then, the timeout is re-raised instead of retrying. The
        last error is re-raised unchanged.
        """

        delays = self.delays()
        attempt = 1
        while True:
            try:
                return fn()
            except Exception as e:
                delay = next(delays, None)
                if delay is None or not should_retry(e):
                    raise
                if isinstance(e, WorkflowTimeout) and not e.settle(e.timeout_seconds):
                    logger.error(
                        "Timed-out attempt still running, not retrying",
                        extra={"operation": operation, "attempt": attempt},
                    )
                    raise
                logger.warning(
                    "Attempt failed, retrying",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "max_attempts": self.max_attempts,
                        "delay_seconds": delay,
                        "error": str(e),
                    },
                )
                sleep(delay)
                attempt += 1


def call_with_timeout(
    fn: Callable[[], T],
    timeout_seconds: float | None,
    *,
    operation: str,
) -> T:
    """Run `fn` with a deadline.

    The call runs on a daemon thread. When the deadline passes the caller gets
    `WorkflowTimeout` carrying the still-running future as `abandoned`;
    whatever that call later produces is discarded. A timeout of None or <= 0
    calls `fn` inline.
    """

    if timeout_seconds is None or timeout_seconds <= 0:
        return fn()

    future: Future[T] = Future()

    def _target() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn())
        except BaseException as e:  # noqa: BLE001 (handed to the waiting caller)
            future.set_exception(e)

    worker = threading.Thread(target=_target, name=f"adf-{operation}", daemon=True)
    worker.start()
    try:
        return future.result(timeout=timeout_seconds)
    except FutureTimeout:
        # FutureTimeout is the builtin TimeoutError, which `fn` may raise itself.
        if future.done():
            return future.result()
        logger.error(
            "Operation timed out",
            extra={"operation": operation, "timeout_seconds": timeout_seconds},
        )
        raise WorkflowTimeout(
            operation=operation, timeout_seconds=timeout_seconds, abandoned=future
        ) from None
