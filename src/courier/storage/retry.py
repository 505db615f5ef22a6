"""Retry policy for Qdrant calls.

Connection errors, timeouts and 5xx responses are retried with exponential
backoff. Whatever still fails after the last attempt surfaces as
StorageError, which the API maps to a 500 and the worker logs before its
next tick. Webhook delivery retries are durable and live in the retry
worker, not here.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import httpx
from qdrant_client.http.exceptions import UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from courier.exceptions import StorageError

logger = logging.getLogger(__name__)

STORAGE_ATTEMPTS = 3

P = ParamSpec("P")
T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """Whether a Qdrant failure is worth retrying (never a 4xx)."""
    if isinstance(exc, UnexpectedResponse):
        return exc.status_code is None or exc.status_code >= 500
    return isinstance(exc, (httpx.ConnectError, httpx.TimeoutException))


def _log_retry(retry_state: RetryCallState) -> None:
    fn_name = retry_state.fn.__name__ if retry_state.fn else "unknown"
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Qdrant %s failed (attempt %d/%d), retrying: %s",
        fn_name,
        retry_state.attempt_number,
        STORAGE_ATTEMPTS,
        exc,
        extra={"fn_name": fn_name, "attempt": retry_state.attempt_number},
    )


def qdrant_retry(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Retry transient Qdrant errors, then raise StorageError."""
    retrying = retry(
        stop=stop_after_attempt(STORAGE_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception(is_transient),
        before_sleep=_log_retry,
        reraise=True,
    )(func)

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await retrying(*args, **kwargs)
        except (httpx.HTTPError, UnexpectedResponse) as e:
            raise StorageError(f"Qdrant {func.__name__} failed: {e}") from e

    return wrapper


__all__ = ["STORAGE_ATTEMPTS", "is_transient", "qdrant_retry"]
