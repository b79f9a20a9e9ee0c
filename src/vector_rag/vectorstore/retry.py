"""Bounded exponential backoff for store calls, built on tenacity."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from pydantic import BaseModel, Field
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from vector_rag.config import settings
from vector_rag.exceptions import StoreFailure, StoreTransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """How many times, and how patiently, a transient store error is retried."""

    max_attempts: int = Field(default=settings.store_max_attempts, ge=1)
    initial_backoff: float = Field(default=settings.store_initial_backoff, ge=0)
    max_backoff: float = Field(default=settings.store_max_backoff, ge=0)


def _log_before_sleep(operation: str, max_attempts: int) -> Callable[[RetryCallState], None]:
    def _log(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        wait = state.next_action.sleep if state.next_action else 0.0
        logger.warning(
            "%s: transient store error (attempt %d/%d), retrying in %.2fs: %s",
            operation,
            state.attempt_number,
            max_attempts,
            wait,
            exc,
        )

    return _log


def call_with_retry(fn: Callable[[], T], *, operation: str, policy: RetryPolicy) -> T:
    """Run *fn*, retrying :class:`StoreTransientError` per *policy*.

    Exhausted retries raise :class:`StoreFailure` chained from the last
    transient error. Any other exception propagates on the first attempt.
    """
    retrying = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(multiplier=policy.initial_backoff, max=policy.max_backoff),
        retry=retry_if_exception_type(StoreTransientError),
        before_sleep=_log_before_sleep(operation, policy.max_attempts),
    )
    try:
        return retrying(fn)
    except RetryError as exc:
        last = exc.last_attempt.exception()
        raise StoreFailure(
            f"{operation} failed after {policy.max_attempts} attempts: {last}",
            {"operation": operation, "attempts": policy.max_attempts},
        ) from last
