"""Qdrant-backed webhook store.

Subscribers and deliveries live in two payload-only collections (a 1-d
zero vector satisfies Qdrant's schema; nothing is searched by vector).
Outcome updates use ``set_payload`` so each write touches a single point.

Example:
    ```python
    async with QdrantWebhookStore(url="http://localhost:6333") as store:
        subscribers = await store.find_subscribers("post.created")
    ```
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import TYPE_CHECKING, Any

from qdrant_client import AsyncQdrantClient, models

from hookshot.config import settings
from hookshot.exceptions import NotFoundError
from hookshot.models import DueDelivery, Subscriber, WebhookDelivery

from .base import WebhookStore
from .retry import storage_operation

if TYPE_CHECKING:
    from hookshot.models import DeliveryStatus, EventType

COLLECTION_NAMES = {
    "subscribers": "subscribers",
    "deliveries": "deliveries",
}

# Fields filtered or ordered server-side
PAYLOAD_INDEXES = {
    "subscribers": {
        "owner_id": models.PayloadSchemaType.KEYWORD,
        "active": models.PayloadSchemaType.BOOL,
        "events": models.PayloadSchemaType.KEYWORD,
    },
    "deliveries": {
        "subscriber_id": models.PayloadSchemaType.KEYWORD,
        "status": models.PayloadSchemaType.KEYWORD,
        "attempt_count": models.PayloadSchemaType.INTEGER,
        "next_retry_at": models.PayloadSchemaType.DATETIME,
        "created_at": models.PayloadSchemaType.DATETIME,
    },
}

VECTOR_SIZE = 1
ZERO_VECTOR = [0.0]
SCROLL_PAGE_SIZE = 256


def _match(key: str, value: Any) -> models.FieldCondition:
    return models.FieldCondition(key=key, match=models.MatchValue(value=value))


class QdrantWebhookStore(WebhookStore):
    """Async Qdrant store for subscribers and delivery records.

    Attributes:
        client: Async Qdrant client instance.
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        scroll_limit: int | None = None,
        client: AsyncQdrantClient | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            scroll_limit: Cap on records returned by one paged scroll.
            client: Pre-built client (e.g. ``AsyncQdrantClient(location=":memory:")``).
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._scroll_limit = scroll_limit or settings.storage_max_scroll_limit
        self._client = client

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        """Connect (unless a client was injected) and ensure collections exist."""
        if self._client is None:
            self._client = AsyncQdrantClient(url=self._url, api_key=self._api_key)
        await self._ensure_collections()

    async def close(self) -> None:
        """Close the client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    def _collection_name(self, kind: str) -> str:
        """Get full collection name with prefix."""
        return f"{self._prefix}_{COLLECTION_NAMES[kind]}"

    @staticmethod
    def _point_id(record_id: str) -> str:
        """Convert a record id to a deterministic UUID-format point id."""
        h = hashlib.sha256(record_id.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    @storage_operation
    async def _ensure_collections(self) -> None:
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for kind in COLLECTION_NAMES:
            name = self._collection_name(kind)
            if name in existing:
                continue
            await self.client.create_collection(
                collection_name=name,
                vectors_config=models.VectorParams(size=VECTOR_SIZE, distance=models.Distance.DOT),
            )
            for field_name, schema in PAYLOAD_INDEXES[kind].items():
                await self.client.create_payload_index(
                    collection_name=name,
                    field_name=field_name,
                    field_schema=schema,
                )

    # Serialization

    @staticmethod
    def _subscriber_to_payload(subscriber: Subscriber) -> dict[str, Any]:
        payload = subscriber.model_dump(mode="json")
        # model_dump masks SecretStr; the store is the one place it is unwrapped
        payload["secret"] = subscriber.signing_key()
        return payload

    @staticmethod
    def _delivery_to_payload(delivery: WebhookDelivery) -> dict[str, Any]:
        return delivery.model_dump(mode="json")

    async def _upsert(self, kind: str, record_id: str, payload: dict[str, Any]) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(kind),
            points=[
                models.PointStruct(
                    id=self._point_id(record_id),
                    vector=ZERO_VECTOR,
                    payload=payload,
                )
            ],
        )

    async def _retrieve(self, kind: str, record_ids: list[str]) -> list[dict[str, Any]]:
        if not record_ids:
            return []
        results = await self.client.retrieve(
            collection_name=self._collection_name(kind),
            ids=[self._point_id(record_id) for record_id in record_ids],
            with_payload=True,
        )
        return [r.payload for r in results if r.payload is not None]

    async def _scroll(self, kind: str, scroll_filter: models.Filter) -> list[dict[str, Any]]:
        """Page through matching points, up to the configured scroll limit."""
        payloads: list[dict[str, Any]] = []
        offset: Any = None

        while len(payloads) < self._scroll_limit:
            points, offset = await self.client.scroll(
                collection_name=self._collection_name(kind),
                scroll_filter=scroll_filter,
                limit=min(SCROLL_PAGE_SIZE, self._scroll_limit - len(payloads)),
                offset=offset,
                with_payload=True,
            )
            payloads.extend(p.payload for p in points if p.payload is not None)
            if offset is None:
                break

        return payloads

    # Subscribers

    @storage_operation
    async def save_subscriber(self, subscriber: Subscriber) -> str:
        await self._upsert("subscribers", subscriber.id, self._subscriber_to_payload(subscriber))
        return subscriber.id

    @storage_operation
    async def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        payloads = await self._retrieve("subscribers", [subscriber_id])
        if not payloads:
            return None
        return Subscriber.model_validate(payloads[0])

    @storage_operation
    async def list_subscribers(self, owner_id: str) -> list[Subscriber]:
        payloads = await self._scroll(
            "subscribers", models.Filter(must=[_match("owner_id", owner_id)])
        )
        subscribers = [Subscriber.model_validate(p) for p in payloads]
        subscribers.sort(key=lambda s: s.created_at, reverse=True)
        return subscribers

    @storage_operation
    async def count_subscribers(self, owner_id: str) -> int:
        result = await self.client.count(
            collection_name=self._collection_name("subscribers"),
            count_filter=models.Filter(must=[_match("owner_id", owner_id)]),
            exact=True,
        )
        return result.count

    @storage_operation
    async def delete_subscriber(self, subscriber_id: str) -> bool:
        if not await self._retrieve("subscribers", [subscriber_id]):
            return False
        await self.client.delete(
            collection_name=self._collection_name("subscribers"),
            points_selector=models.PointIdsList(points=[self._point_id(subscriber_id)]),
        )
        return True

    @storage_operation
    async def find_subscribers(
        self,
        event_type: EventType,
        owner_id: str | None = None,
    ) -> list[Subscriber]:
        conditions: list[models.FieldCondition] = [
            _match("active", True),
            models.FieldCondition(key="events", match=models.MatchAny(any=[event_type])),
        ]
        if owner_id is not None:
            conditions.append(_match("owner_id", owner_id))

        payloads = await self._scroll("subscribers", models.Filter(must=conditions))
        return [Subscriber.model_validate(p) for p in payloads]

    @storage_operation
    async def touch_subscriber(self, subscriber_id: str, triggered_at: datetime) -> None:
        if not await self._retrieve("subscribers", [subscriber_id]):
            return
        await self.client.set_payload(
            collection_name=self._collection_name("subscribers"),
            payload={"last_triggered_at": triggered_at.isoformat()},
            points=[self._point_id(subscriber_id)],
        )

    # Deliveries

    @storage_operation
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
        await self._upsert("deliveries", delivery.id, self._delivery_to_payload(delivery))
        return delivery

    @storage_operation
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
        payloads = await self._retrieve("deliveries", [delivery_id])
        if not payloads:
            raise NotFoundError("delivery", delivery_id)

        updated = WebhookDelivery.model_validate(payloads[0]).model_copy(
            update={
                "status": status,
                "attempt_count": attempt_count,
                "status_code": status_code,
                "response_body": response_body,
                "error_message": error_message,
                "next_retry_at": next_retry_at,
                "delivered_at": delivered_at,
            }
        )
        changes = updated.model_dump(
            mode="json",
            include={
                "status",
                "attempt_count",
                "status_code",
                "response_body",
                "error_message",
                "next_retry_at",
                "delivered_at",
            },
        )
        await self.client.set_payload(
            collection_name=self._collection_name("deliveries"),
            payload=changes,
            points=[self._point_id(delivery_id)],
        )
        return updated

    @storage_operation
    async def get_delivery(self, delivery_id: str) -> WebhookDelivery | None:
        payloads = await self._retrieve("deliveries", [delivery_id])
        if not payloads:
            return None
        return WebhookDelivery.model_validate(payloads[0])

    @storage_operation
    async def list_deliveries(self, subscriber_id: str, limit: int = 20) -> list[WebhookDelivery]:
        points, _ = await self.client.scroll(
            collection_name=self._collection_name("deliveries"),
            scroll_filter=models.Filter(must=[_match("subscriber_id", subscriber_id)]),
            order_by=models.OrderBy(key="created_at", direction=models.Direction.DESC),
            limit=limit,
            with_payload=True,
        )
        deliveries = [
            WebhookDelivery.model_validate(p.payload) for p in points if p.payload is not None
        ]
        deliveries.sort(key=lambda d: d.created_at, reverse=True)
        return deliveries

    @storage_operation
    async def find_due_retries(
        self,
        now: datetime,
        limit: int,
        max_retries: int,
    ) -> list[DueDelivery]:
        # Terminal failures keep status "failed", so every due predicate is server-side
        points, _ = await self.client.scroll(
            collection_name=self._collection_name("deliveries"),
            scroll_filter=models.Filter(
                must=[
                    _match("status", "failed"),
                    models.FieldCondition(
                        key="attempt_count",
                        range=models.Range(lt=max_retries),
                    ),
                    models.FieldCondition(
                        key="next_retry_at",
                        range=models.DatetimeRange(lt=now),
                    ),
                ]
            ),
            order_by=models.OrderBy(key="next_retry_at", direction=models.Direction.ASC),
            limit=limit,
            with_payload=True,
        )
        due = [WebhookDelivery.model_validate(p.payload) for p in points if p.payload is not None]
        due.sort(key=lambda d: d.next_retry_at or d.created_at)

        subscriber_ids = sorted({d.subscriber_id for d in due})
        subscribers = {
            s.id: s
            for s in (
                Subscriber.model_validate(p)
                for p in await self._retrieve("subscribers", subscriber_ids)
            )
        }

        return [DueDelivery(delivery=d, subscriber=subscribers.get(d.subscriber_id)) for d in due]
