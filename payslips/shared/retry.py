"""
Attempt Policy

Tenacity helpers for the task-queue attempt policy shared by document
and batch tasks: a fixed number of attempts with a scheduled backoff.
"""

from collections.abc import Callable, Sequence

import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
)

log = structlog.get_logger()


def wait_schedule(backoff_seconds: Sequence[float]) -> Callable[[RetryCallState], float]:
    """
    Wait strategy that follows a fixed schedule.

    The delay after the n-th failed attempt is backoff_seconds[n - 1];
    the last entry repeats once the schedule runs out.
    """

    def _wait(retry_state: RetryCallState) -> float:
        if not backoff_seconds:
            return 0
        index = min(retry_state.attempt_number, len(backoff_seconds)) - 1
        return backoff_seconds[index]

    return _wait


def attempt_policy(
    *,
    max_attempts: int,
    backoff_seconds: Sequence[float],
    retry_on: tuple[type[BaseException], ...],
    sleep: Callable[[float], None],
    before_retry: Callable[[RetryCallState], None] | None = None,
) -> Retrying:
    """Build a Retrying that re-raises the last error once attempts run out."""

    def _before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        log.warning(
            "task_attempt_failed",
            attempt=retry_state.attempt_number,
            max_attempts=max_attempts,
            next_delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(error) if error else None,
        )
        if before_retry is not None:
            before_retry(retry_state)

    return Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_schedule(backoff_seconds),
        retry=retry_if_exception_type(retry_on),
        sleep=sleep,
        before_sleep=_before_sleep,
        reraise=True,
    )
