"""Fan-out of domain events to subscribed webhook endpoints.

One dispatch builds a single immutable envelope, creates a delivery record
per matching subscriber and runs every first attempt concurrently. A
subscriber's failure is recorded on its own delivery record and never
affects the others or the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from hookshot.config import Settings
from hookshot.exceptions import ValidationError
from hookshot.logging import delivery_context
from hookshot.models import WebhookEnvelope, is_event_type, utc_now

from .backoff import outcome_update
from .executor import DeliveryExecutor

if TYPE_CHECKING:
    from hookshot.models import DeliveryResult, Subscriber
    from hookshot.storage import WebhookStore

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """Dispatches webhook events to registered subscribers.

    Handles:
    - Finding active subscribers for an event type
    - Creating one delivery record per subscriber
    - Running first attempts concurrently
    - Recording outcomes and scheduling the first retry

    Example:
        ```python
        dispatcher = WebhookDispatcher(store)

        delivery_ids = await dispatcher.dispatch("post.created", {"id": "p1"})
        ```
    """

    def __init__(
        self,
        store: WebhookStore,
        executor: DeliveryExecutor | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            store: Subscriber/delivery store.
            executor: Executor for single attempts. Built from settings if None.
            settings: Retry schedule and concurrency limits. Defaults if None.
        """
        self._settings = settings or Settings()
        self._store = store
        self._executor = executor or DeliveryExecutor(
            timeout_seconds=self._settings.delivery_timeout_seconds,
            response_body_limit=self._settings.response_body_limit,
            user_agent=self._settings.user_agent,
        )
        self._max_concurrent = self._settings.max_concurrent_deliveries
        self._semaphore = (
            asyncio.Semaphore(self._max_concurrent) if self._max_concurrent is not None else None
        )

    @property
    def executor(self) -> DeliveryExecutor:
        return self._executor

    async def dispatch(
        self,
        event_type: str,
        data: dict[str, Any] | None = None,
        owner_id: str | None = None,
    ) -> list[str]:
        """Dispatch an event to every active subscriber of its type.

        Args:
            event_type: One of the supported event types.
            data: Event-specific payload, copied into the envelope.
            owner_id: Restrict delivery to one owner's subscribers.

        Returns:
            IDs of the delivery records created.

        Raises:
            ValidationError: If the event type is not supported.
            StorageError: If subscribers cannot be looked up.
        """
        if not is_event_type(event_type):
            raise ValidationError("event_type", f"unsupported event type '{event_type}'")

        subscribers = await self._store.find_subscribers(event_type, owner_id)

        if not subscribers:
            logger.debug("No webhooks registered for event %s", event_type)
            return []

        envelope = WebhookEnvelope(event=event_type, data=data or {})
        return await self.dispatch_envelope(envelope, subscribers)

    async def dispatch_envelope(
        self,
        envelope: WebhookEnvelope,
        subscribers: list[Subscriber],
    ) -> list[str]:
        """Deliver a prepared envelope to the given subscribers concurrently."""
        results = await asyncio.gather(
            *(self._deliver_to_subscriber(subscriber, envelope) for subscriber in subscribers),
            return_exceptions=True,
        )

        delivery_ids: list[str] = []
        for subscriber, result in zip(subscribers, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Webhook delivery to %s crashed: %s",
                    subscriber.id,
                    result,
                    exc_info=result,
                )
            elif result is not None:
                delivery_ids.append(result)

        return delivery_ids

    async def _deliver_to_subscriber(
        self,
        subscriber: Subscriber,
        envelope: WebhookEnvelope,
    ) -> str | None:
        """Create the record, make the first attempt and save its outcome.

        Returns:
            Delivery ID, or None if the record could not be created.
        """
        try:
            delivery = await self._store.create_delivery(
                subscriber.id,
                envelope.event,
                envelope.to_payload(),
            )
        except Exception as e:
            logger.error(
                "Failed to create delivery record for webhook %s (%s): %s",
                subscriber.id,
                envelope.event,
                e,
            )
            return None

        with delivery_context(delivery_id=delivery.id, subscriber_id=subscriber.id):
            await self._attempt(subscriber, envelope, delivery.id)
        return delivery.id

    async def _attempt(
        self,
        subscriber: Subscriber,
        envelope: WebhookEnvelope,
        delivery_id: str,
    ) -> None:
        """Make the first attempt and save its outcome; store errors are logged."""
        if self._semaphore is None:
            result = await self._executor.deliver(subscriber, envelope, delivery_id)
        else:
            async with self._semaphore:
                result = await self._executor.deliver(subscriber, envelope, delivery_id)

        now = utc_now()
        update = outcome_update(
            result,
            attempt_count=1,
            now=now,
            max_retries=self._settings.max_retries,
            delays=self._settings.retry_delays,
        )

        try:
            await self._store.update_delivery(delivery_id, **update)
        except Exception as e:
            logger.error("Failed to record outcome of delivery %s: %s", delivery_id, e)
            return

        try:
            await self._store.touch_subscriber(subscriber.id, now)
        except Exception as e:
            logger.warning(
                "Failed to update last_triggered_at for webhook %s: %s", subscriber.id, e
            )

        if result.success:
            logger.info(
                "Webhook delivered: %s to %s (delivery %s, status %s)",
                envelope.event,
                subscriber.id,
                delivery_id,
                result.status_code,
            )
        elif update["next_retry_at"] is not None:
            logger.warning(
                "Webhook delivery failed, will retry: %s to %s (delivery %s): %s",
                envelope.event,
                subscriber.id,
                delivery_id,
                result.error_message,
            )
        else:
            logger.error(
                "Webhook permanently undeliverable: %s to %s (delivery %s): %s",
                envelope.event,
                subscriber.id,
                delivery_id,
                result.error_message,
            )

    async def send_test(self, subscriber: Subscriber) -> DeliveryResult:
        """Send a test event to check that an endpoint is reachable.

        Nothing is persisted; the delivery id is ``test-<unix ms>``.
        """
        envelope = WebhookEnvelope.for_test()
        delivery_id = f"test-{int(time.time() * 1000)}"
        return await self._executor.deliver(subscriber, envelope, delivery_id)


async def dispatch_webhook_event(
    store: WebhookStore,
    event_type: str,
    owner_id: str | None = None,
    **data: object,
) -> list[str]:
    """Convenience function to dispatch one event with a throwaway dispatcher.

    Args:
        store: WebhookStore instance.
        event_type: Type of event.
        owner_id: Optional owner scope.
        **data: Event-specific payload data.

    Returns:
        List of delivery IDs created.
    """
    dispatcher = WebhookDispatcher(store)
    try:
        return await dispatcher.dispatch(event_type, dict(data), owner_id=owner_id)
    finally:
        await dispatcher.executor.aclose()
