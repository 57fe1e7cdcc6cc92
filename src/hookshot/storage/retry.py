"""Retry and error translation for storage operations.

Transient Qdrant errors are retried with exponential backoff; anything
still failing afterwards surfaces as StorageError so callers only have
to handle Hookshot's own hierarchy.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import httpx
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from hookshot.exceptions import HookshotError, StorageError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def _log_retry(retry_state: RetryCallState) -> None:
    """Log retry attempts with context."""
    if retry_state.attempt_number > 1:
        logger.warning(
            "Retrying Qdrant operation",
            extra={
                "attempt": retry_state.attempt_number,
                "fn_name": retry_state.fn.__name__ if retry_state.fn else "unknown",
                "exception": str(retry_state.outcome.exception()) if retry_state.outcome else None,
            },
        )


# Only network/server errors are retried, never client errors (4xx)
qdrant_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(
        (
            httpx.ConnectError,
            httpx.TimeoutException,
            ResponseHandlingException,
            UnexpectedResponse,
        )
    ),
    before_sleep=_log_retry,
    reraise=True,
)


def storage_operation(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Retry transient failures, then translate backend errors to StorageError."""
    retried = qdrant_retry(func)

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await retried(*args, **kwargs)
        except HookshotError:
            raise
        except Exception as e:
            raise StorageError(f"{func.__name__} failed: {e}") from e

    return wrapper
