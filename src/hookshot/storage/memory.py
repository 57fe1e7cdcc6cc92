"""In-memory webhook store.

Used for development, tests and single-process deployments that can
afford to lose pending retries on restart.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Any

from hookshot.exceptions import NotFoundError
from hookshot.models import DueDelivery, Subscriber, WebhookDelivery

from .base import WebhookStore

if TYPE_CHECKING:
    from hookshot.models import DeliveryStatus, EventType


class InMemoryWebhookStore(WebhookStore):
    """Dict-backed store.

    One lock serializes every operation, which gives the row-level
    atomicity the dispatcher and retry scheduler rely on. Records are
    copied on the way in and out so callers never alias stored state.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, Subscriber] = {}
        self._deliveries: dict[str, WebhookDelivery] = {}
        self._lock = asyncio.Lock()

    async def save_subscriber(self, subscriber: Subscriber) -> str:
        async with self._lock:
            self._subscribers[subscriber.id] = subscriber.model_copy(deep=True)
        return subscriber.id

    async def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        async with self._lock:
            subscriber = self._subscribers.get(subscriber_id)
            return subscriber.model_copy(deep=True) if subscriber else None

    async def list_subscribers(self, owner_id: str) -> list[Subscriber]:
        async with self._lock:
            owned = [
                s.model_copy(deep=True)
                for s in self._subscribers.values()
                if s.owner_id == owner_id
            ]
        owned.sort(key=lambda s: s.created_at, reverse=True)
        return owned

    async def delete_subscriber(self, subscriber_id: str) -> bool:
        async with self._lock:
            return self._subscribers.pop(subscriber_id, None) is not None

    async def find_subscribers(
        self,
        event_type: EventType,
        owner_id: str | None = None,
    ) -> list[Subscriber]:
        async with self._lock:
            return [
                s.model_copy(deep=True)
                for s in self._subscribers.values()
                if s.subscribes_to(event_type) and (owner_id is None or s.owner_id == owner_id)
            ]

    async def touch_subscriber(self, subscriber_id: str, triggered_at: datetime) -> None:
        async with self._lock:
            subscriber = self._subscribers.get(subscriber_id)
            if subscriber is not None:
                subscriber.last_triggered_at = triggered_at

    async def create_delivery(
        self,
        subscriber_id: str,
        event_type: EventType,
        payload: dict[str, Any],
    ) -> WebhookDelivery:
        delivery = WebhookDelivery(
            subscriber_id=subscriber_id,
            event=event_type,
            payload=payload,
        )
        async with self._lock:
            self._deliveries[delivery.id] = delivery.model_copy(deep=True)
        return delivery

    async def update_delivery(
        self,
        delivery_id: str,
        *,
        status: DeliveryStatus,
        attempt_count: int,
        status_code: int | None = None,
        response_body: str | None = None,
        error_message: str | None = None,
        next_retry_at: datetime | None = None,
        delivered_at: datetime | None = None,
    ) -> WebhookDelivery:
        async with self._lock:
            current = self._deliveries.get(delivery_id)
            if current is None:
                raise NotFoundError("delivery", delivery_id)
            updated = current.model_copy(
                update={
                    "status": status,
                    "attempt_count": attempt_count,
                    "status_code": status_code,
                    "response_body": response_body,
                    "error_message": error_message,
                    "next_retry_at": next_retry_at,
                    "delivered_at": delivered_at,
                },
                deep=True,
            )
            self._deliveries[delivery_id] = updated
            return updated.model_copy(deep=True)

    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        async with self._lock:
            delivery = self._deliveries.get(delivery_id)
            return delivery.model_copy(deep=True) if delivery else None

    async def list_deliveries(self, subscriber_id: str, limit: int = 20) -> list[WebhookDelivery]:
        async with self._lock:
            matching = [
                d.model_copy(deep=True)
                for d in self._deliveries.values()
                if d.subscriber_id == subscriber_id
            ]
        matching.sort(key=lambda d: d.created_at, reverse=True)
        return matching[:limit]

    async def find_due_retries(
        self,
        now: datetime,
        limit: int,
        max_retries: int,
    ) -> list[DueDelivery]:
        async with self._lock:
            due = [d for d in self._deliveries.values() if d.is_due(now, max_retries)]
            due.sort(key=lambda d: d.next_retry_at or d.created_at)
            results: list[DueDelivery] = []
            for delivery in due[:limit]:
                subscriber = self._subscribers.get(delivery.subscriber_id)
                results.append(
                    DueDelivery(
                        delivery=delivery.model_copy(deep=True),
                        subscriber=subscriber.model_copy(deep=True) if subscriber else None,
                    )
                )
            return results
