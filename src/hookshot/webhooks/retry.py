"""Retry sweep for failed webhook deliveries.

``process_pending_retries()`` is meant to be called on a fixed cadence by
an external trigger (cron, queue consumer, a loop in a worker process).
Each sweep re-delivers the original envelope of every due record and
advances or exhausts its backoff schedule.

Sweeps must not overlap across processes: the due query has no claim
step, so two concurrent sweeps could pick up the same record. Within one
RetryScheduler an overlapping call returns immediately.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from hookshot.config import Settings
from hookshot.logging import delivery_context
from hookshot.models import DueDelivery, RetrySweepResult, utc_now

from .backoff import outcome_update
from .executor import DeliveryExecutor

if TYPE_CHECKING:
    from hookshot.models import Subscriber, WebhookDelivery
    from hookshot.storage import WebhookStore

logger = logging.getLogger(__name__)

INACTIVE_SUBSCRIBER_ERROR = "Webhook is inactive or deleted"


class RetryScheduler:
    """Re-attempts failed deliveries whose next_retry_at has passed.

    Example:
        ```python
        scheduler = RetryScheduler(store)

        # Called every minute by the surrounding worker
        result = await scheduler.process_pending_retries()
        print(f"{result.succeeded} delivered, {result.exhausted} given up")
        ```
    """

    def __init__(
        self,
        store: WebhookStore,
        executor: DeliveryExecutor | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Subscriber/delivery store.
            executor: Executor for single attempts. Built from settings if None.
            settings: Retry schedule and batch size. Defaults if None.
        """
        self._settings = settings or Settings()
        self._store = store
        self._executor = executor or DeliveryExecutor(
            timeout_seconds=self._settings.delivery_timeout_seconds,
            response_body_limit=self._settings.response_body_limit,
            user_agent=self._settings.user_agent,
        )
        self._sweep_lock = asyncio.Lock()

    @property
    def executor(self) -> DeliveryExecutor:
        return self._executor

    async def process_pending_retries(self, now: datetime | None = None) -> RetrySweepResult:
        """Run one sweep over due deliveries.

        Args:
            now: Sweep time; defaults to the current UTC time.

        Returns:
            Counts of what happened to each examined record.

        Raises:
            StorageError: If due deliveries cannot be queried.
        """
        if self._sweep_lock.locked():
            logger.debug("Retry sweep already running, skipping")
            return RetrySweepResult()

        async with self._sweep_lock:
            return await self._sweep(now or utc_now())

    async def _sweep(self, now: datetime) -> RetrySweepResult:
        due = await self._store.find_due_retries(
            now=now,
            limit=self._settings.retry_batch_size,
            max_retries=self._settings.max_retries,
        )

        result = RetrySweepResult()
        if not due:
            return result

        logger.info("Processing webhook retries: %d due", len(due))

        for item in due:
            result.processed += 1
            try:
                outcome = await self._retry_one(item)
            except Exception as e:
                logger.error("Failed to record retry of delivery %s: %s", item.delivery.id, e)
                result.errors += 1
                continue

            if outcome == "succeeded":
                result.succeeded += 1
            elif outcome == "rescheduled":
                result.rescheduled += 1
            elif outcome == "exhausted":
                result.exhausted += 1
            else:
                result.abandoned += 1

        return result

    async def _retry_one(self, item: DueDelivery) -> str:
        """Retry a single record. Returns which counter it belongs to."""
        delivery = item.delivery
        subscriber = item.subscriber

        with delivery_context(
            delivery_id=delivery.id,
            subscriber_id=delivery.subscriber_id,
            event_type=delivery.event,
        ):
            if subscriber is None or not subscriber.active:
                await self._abandon(delivery)
                return "abandoned"

            return await self._redeliver(delivery, subscriber)

    async def _abandon(self, delivery: WebhookDelivery) -> None:
        """Terminally fail a record whose subscriber is gone, without any HTTP call."""
        await self._store.update_delivery(
            delivery.id,
            status="failed",
            attempt_count=delivery.attempt_count,
            status_code=delivery.status_code,
            response_body=delivery.response_body,
            error_message=INACTIVE_SUBSCRIBER_ERROR,
            next_retry_at=None,
        )
        logger.warning(
            "Webhook delivery abandoned, subscriber inactive or deleted: %s (subscriber %s)",
            delivery.id,
            delivery.subscriber_id,
        )

    async def _redeliver(self, delivery: WebhookDelivery, subscriber: Subscriber) -> str:
        attempt_count = delivery.attempt_count + 1
        result = await self._executor.deliver(subscriber, delivery.envelope(), delivery.id)

        # Backoff is measured from the attempt's completion
        update = outcome_update(
            result,
            attempt_count=attempt_count,
            now=utc_now(),
            max_retries=self._settings.max_retries,
            delays=self._settings.retry_delays,
        )
        await self._store.update_delivery(delivery.id, **update)

        if result.success:
            logger.info("Webhook retry successful: %s (attempt %d)", delivery.id, attempt_count)
            return "succeeded"

        if update["next_retry_at"] is None:
            logger.error(
                "Webhook max retries exceeded: %s to %s, event %s after %d attempts: %s",
                delivery.id,
                delivery.subscriber_id,
                delivery.event,
                attempt_count,
                result.error_message,
            )
            return "exhausted"

        logger.info(
            "Webhook retry failed: %s (attempt %d, next at %s): %s",
            delivery.id,
            attempt_count,
            update["next_retry_at"].isoformat(),
            result.error_message,
        )
        return "rescheduled"
