"""Retry schedule shared by the dispatcher and the retry scheduler."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hookshot.models import DeliveryResult

MAX_RETRIES = 5
RETRY_DELAYS: tuple[int, ...] = (60, 300, 900, 3600, 7200)  # 1m, 5m, 15m, 1h, 2h


def backoff_delay(attempt_count: int, delays: Sequence[int] = RETRY_DELAYS) -> timedelta:
    """Delay to wait after attempt number ``attempt_count`` failed.

    The first failure waits ``delays[0]``; counts past the end of the
    schedule reuse its last entry.
    """
    if attempt_count < 1:
        raise ValueError(f"attempt_count must be >= 1, got {attempt_count}")
    index = min(attempt_count - 1, len(delays) - 1)
    return timedelta(seconds=delays[index])


def next_retry_time(
    attempt_count: int,
    now: datetime,
    max_retries: int = MAX_RETRIES,
    delays: Sequence[int] = RETRY_DELAYS,
) -> datetime | None:
    """When the next attempt is due, or None once attempts are exhausted."""
    if attempt_count >= max_retries:
        return None
    return now + backoff_delay(attempt_count, delays)


def outcome_update(
    result: DeliveryResult,
    attempt_count: int,
    now: datetime,
    max_retries: int = MAX_RETRIES,
    delays: Sequence[int] = RETRY_DELAYS,
) -> dict[str, Any]:
    """Fields to write on a delivery record after attempt ``attempt_count``.

    Returns keyword arguments for ``WebhookStore.update_delivery``.
    """
    if result.success:
        return {
            "status": "success",
            "attempt_count": attempt_count,
            "status_code": result.status_code,
            "response_body": result.response_body,
            "error_message": None,
            "next_retry_at": None,
            "delivered_at": now,
        }

    return {
        "status": "failed",
        "attempt_count": attempt_count,
        "status_code": result.status_code,
        "response_body": result.response_body,
        "error_message": result.error_message,
        "next_retry_at": next_retry_time(attempt_count, now, max_retries, delays),
        "delivered_at": None,
    }
