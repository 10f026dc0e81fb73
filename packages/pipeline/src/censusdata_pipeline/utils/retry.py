"""
utils/retry.py — Retry decorator for async HTTP calls.

Uses tenacity under the hood. Logs each retry with structlog so failures
are observable before the final error propagates.

Usage:
    from censusdata_pipeline.utils.retry import with_retry

    @with_retry(max_attempts=3, base_delay=1.0)
    async def fetch_data(url: str) -> bytes:
        async with httpx.AsyncClient() as client:
            r = await client.get(url)
            r.raise_for_status()
            return r.content

    # Linear backoff: 1 s, 2 s, 3 s between attempts
    @with_retry(max_attempts=4, base_delay=1.0, backoff="linear")
    async def call_api() -> dict: ...
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Coroutine
from typing import Any, Literal, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_incrementing,
)

log = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Coroutine[Any, Any, Any]])

Backoff = Literal["exponential", "linear"]


def _wait_strategy(backoff: Backoff, base_delay: float, max_delay: float) -> Any:
    if backoff == "linear":
        return wait_incrementing(start=base_delay, increment=base_delay, max=max_delay)
    return wait_exponential(multiplier=base_delay, max=max_delay)


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    retry_on: type[Exception] | tuple[type[Exception], ...] = Exception,
    backoff: Backoff = "exponential",
) -> Callable[[F], F]:
    """
    Decorator that retries an async function.

    Exponential delays: base_delay * 2^(attempt-1), capped at max_delay
    (1 s, 2 s, 4 s by default). Linear delays: base_delay * attempt
    (1 s, 2 s, 3 s).

    Args:
        max_attempts: Total attempts before raising (first call included).
        base_delay:   Initial delay in seconds.
        max_delay:    Maximum delay cap in seconds.
        retry_on:     Exception type(s) that trigger a retry.
        backoff:      "exponential" or "linear".

    Returns:
        Decorated async function. The last exception is re-raised unchanged
        once attempts are exhausted.
    """

    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt_log = log.bind(function=getattr(fn, "__qualname__", repr(fn)))

            def _log_retry(state: RetryCallState) -> None:
                exc = state.outcome.exception() if state.outcome else None
                attempt_log.warning(
                    "retry_attempt",
                    attempt=state.attempt_number + 1,
                    max_attempts=max_attempts,
                    delay_s=state.next_action.sleep if state.next_action else None,
                    last_error=str(exc) if exc else None,
                )

            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(max_attempts),
                    wait=_wait_strategy(backoff, base_delay, max_delay),
                    retry=retry_if_exception_type(retry_on),
                    before_sleep=_log_retry,
                    reraise=True,
                ):
                    with attempt:
                        return await fn(*args, **kwargs)
            except retry_on as exc:
                attempt_log.error(
                    "retry_exhausted",
                    max_attempts=max_attempts,
                    error=str(exc),
                )
                raise

        return wrapper  # type: ignore[return-value]

    return decorator
