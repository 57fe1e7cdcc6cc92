"""Subscriber registration and management.

Owners register endpoints, change which events they receive, rotate
secrets and read their delivery log. The plaintext secret is returned
exactly once, from register() or rotate_secret(); every other read
exposes only ``has_secret``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import pydantic

from hookshot.config import Settings
from hookshot.exceptions import LimitExceededError, NotFoundError, ValidationError
from hookshot.models import (
    RegisteredSubscriber,
    Subscriber,
    SubscriberView,
    is_event_type,
    utc_now,
)

from .signing import generate_secret

if TYPE_CHECKING:
    from hookshot.models import DeliveryResult, WebhookDelivery
    from hookshot.storage import WebhookStore

    from .dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)


def _validate_events(events: list[str]) -> list[str]:
    if not events:
        raise ValidationError("events", "at least one event type is required")
    unknown = [e for e in events if not is_event_type(e)]
    if unknown:
        raise ValidationError("events", f"unsupported event types: {', '.join(unknown)}")
    # Keep first occurrence order, drop duplicates
    return list(dict.fromkeys(events))


def _build_subscriber(**fields: Any) -> Subscriber:
    """Validate subscriber fields, reporting the first bad field."""
    try:
        return Subscriber(**fields)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "subscriber"
        raise ValidationError(field, first["msg"]) from e


class WebhookRegistry:
    """Manages an owner's webhook subscribers.

    Example:
        ```python
        registry = WebhookRegistry(store)
        registered = await registry.register(
            owner_id="user_123",
            url="https://example.com/hooks",
            events=["post.created", "post.published"],
        )
        print(registered.secret)  # shown once
        ```
    """

    def __init__(
        self,
        store: WebhookStore,
        dispatcher: WebhookDispatcher | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            store: Subscriber/delivery store.
            dispatcher: Used by send_test(); optional otherwise.
            settings: Registration limits. Defaults if None.
        """
        self._store = store
        self._dispatcher = dispatcher
        self._settings = settings or Settings()

    async def register(
        self,
        owner_id: str,
        url: str,
        events: list[str],
        name: str | None = None,
        description: str | None = None,
        active: bool = True,
    ) -> RegisteredSubscriber:
        """Register a new subscriber and generate its secret.

        The limit is checked before the save and again after it. If
        concurrent registrations pushed the owner over the limit, this one
        is removed again, so racing calls may all fail but never overshoot.

        Raises:
            ValidationError: Invalid URL (non-http(s) included) or events.
            LimitExceededError: Owner already has the maximum subscribers.
        """
        events = _validate_events(events)
        secret = generate_secret()
        subscriber = _build_subscriber(
            owner_id=owner_id,
            url=url,
            secret=secret,
            events=events,
            name=name,
            description=description,
            active=active,
        )

        limit = self._settings.max_webhooks_per_owner
        if await self._store.count_subscribers(owner_id) >= limit:
            raise LimitExceededError(limit)

        await self._store.save_subscriber(subscriber)
        if await self._store.count_subscribers(owner_id) > limit:
            await self._store.delete_subscriber(subscriber.id)
            logger.warning("Webhook %s rolled back: owner %s over limit", subscriber.id, owner_id)
            raise LimitExceededError(limit)

        logger.info("Webhook created: %s for owner %s", subscriber.id, owner_id)

        return RegisteredSubscriber(subscriber=subscriber.to_view(), secret=secret)

    async def _get_owned(self, owner_id: str, subscriber_id: str) -> Subscriber:
        subscriber = await self._store.get_subscriber(subscriber_id)
        if subscriber is None or subscriber.owner_id != owner_id:
            raise NotFoundError("subscriber", subscriber_id)
        return subscriber

    async def list_subscribers(self, owner_id: str) -> list[SubscriberView]:
        """All of an owner's subscribers, newest first."""
        return [s.to_view() for s in await self._store.list_subscribers(owner_id)]

    async def get(self, owner_id: str, subscriber_id: str) -> SubscriberView:
        """Fetch one subscriber.

        Raises:
            NotFoundError: Unknown id, or owned by someone else.
        """
        return (await self._get_owned(owner_id, subscriber_id)).to_view()

    async def update(
        self,
        owner_id: str,
        subscriber_id: str,
        *,
        url: str | None = None,
        events: list[str] | None = None,
        active: bool | None = None,
        name: str | None = None,
        description: str | None = None,
    ) -> SubscriberView:
        """Change a subscriber's settings. The secret is left untouched.

        Only arguments that are not None are applied.
        """
        current = await self._get_owned(owner_id, subscriber_id)

        fields = current.model_dump()
        fields["url"] = str(current.url)
        fields["secret"] = current.signing_key()
        if url is not None:
            fields["url"] = url
        if events is not None:
            fields["events"] = _validate_events(events)
        if active is not None:
            fields["active"] = active
        if name is not None:
            fields["name"] = name
        if description is not None:
            fields["description"] = description
        fields["updated_at"] = utc_now()

        updated = _build_subscriber(**fields)
        await self._store.save_subscriber(updated)
        logger.info("Webhook updated: %s", subscriber_id)
        return updated.to_view()

    async def rotate_secret(self, owner_id: str, subscriber_id: str) -> str:
        """Replace the secret. The old one stops validating immediately.

        Returns:
            The new plaintext secret (shown once).
        """
        current = await self._get_owned(owner_id, subscriber_id)
        secret = generate_secret()
        rotated = current.model_copy(
            update={"secret": pydantic.SecretStr(secret), "updated_at": utc_now()}
        )
        await self._store.save_subscriber(rotated)
        logger.info("Webhook secret rotated: %s", subscriber_id)
        return secret

    async def delete(self, owner_id: str, subscriber_id: str) -> bool:
        """Delete a subscriber. Pending retries for it are abandoned on the next sweep."""
        await self._get_owned(owner_id, subscriber_id)
        deleted = await self._store.delete_subscriber(subscriber_id)
        if deleted:
            logger.info("Webhook deleted: %s for owner %s", subscriber_id, owner_id)
        return deleted

    async def deliveries(
        self,
        owner_id: str,
        subscriber_id: str,
        limit: int = 20,
    ) -> list[WebhookDelivery]:
        """Delivery log for a subscriber, newest first."""
        await self._get_owned(owner_id, subscriber_id)
        return await self._store.list_deliveries(subscriber_id, limit=limit)

    async def send_test(self, owner_id: str, subscriber_id: str) -> DeliveryResult:
        """Send a test event to one of the owner's subscribers."""
        if self._dispatcher is None:
            raise RuntimeError("WebhookRegistry was created without a dispatcher")
        subscriber = await self._get_owned(owner_id, subscriber_id)
        return await self._dispatcher.send_test(subscriber)
