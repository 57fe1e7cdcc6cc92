"""Persistence interface for subscribers and delivery records.

The dispatcher, retry scheduler and registry only talk to this interface.
Implementations must make each single-record write atomic; they raise
StorageError when the backend is unavailable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hookshot.models import (
        DeliveryStatus,
        DueDelivery,
        EventType,
        Subscriber,
        WebhookDelivery,
    )


class WebhookStore(ABC):
    """Abstract store for subscribers and their delivery records."""

    async def initialize(self) -> None:
        """Prepare the backend (connections, collections)."""

    async def close(self) -> None:
        """Release backend resources."""

    async def __aenter__(self) -> WebhookStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # Subscribers

    @abstractmethod
    async def save_subscriber(self, subscriber: Subscriber) -> str:
        """Insert or replace a subscriber. Returns its id."""

    @abstractmethod
    async def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        """Fetch a subscriber by id, or None if it does not exist."""

    @abstractmethod
    async def list_subscribers(self, owner_id: str) -> list[Subscriber]:
        """All subscribers for an owner, newest first."""

    @abstractmethod
    async def delete_subscriber(self, subscriber_id: str) -> bool:
        """Delete a subscriber. Returns False if it did not exist.

        Delivery records are kept; the retry scheduler abandons them.
        """

    @abstractmethod
    async def find_subscribers(
        self,
        event_type: EventType,
        owner_id: str | None = None,
    ) -> list[Subscriber]:
        """Active subscribers whose event filter contains ``event_type``."""

    async def count_subscribers(self, owner_id: str) -> int:
        """Number of subscribers registered by an owner."""
        return len(await self.list_subscribers(owner_id))

    @abstractmethod
    async def touch_subscriber(self, subscriber_id: str, triggered_at: datetime) -> None:
        """Record that a delivery to this subscriber was just attempted."""

    # Deliveries

    @abstractmethod
    async def create_delivery(
        self,
        subscriber_id: str,
        event_type: EventType,
        payload: dict[str, Any],
    ) -> WebhookDelivery:
        """Create a pending delivery record with attempt_count 0."""

    @abstractmethod
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
        """Overwrite the outcome fields of a delivery record.

        Raises:
            NotFoundError: If the delivery does not exist.
        """

    @abstractmethod
    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        """Fetch a delivery record by id."""

    @abstractmethod
    async def list_deliveries(self, subscriber_id: str, limit: int = 20) -> list[WebhookDelivery]:
        """Delivery history for a subscriber, newest first."""

    @abstractmethod
    async def find_due_retries(
        self,
        now: datetime,
        limit: int,
        max_retries: int,
    ) -> list[DueDelivery]:
        """Failed deliveries due for retry, oldest next_retry_at first.

        Selects status == failed, attempt_count < max_retries and
        next_retry_at < now, each joined with its subscriber (None when
        the subscriber was deleted).
        """
