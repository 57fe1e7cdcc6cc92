"""Tests for subscriber registration and management."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from hookshot.config import Settings
from hookshot.exceptions import LimitExceededError, NotFoundError, ValidationError
from hookshot.models import DeliveryResult
from hookshot.storage import InMemoryWebhookStore
from hookshot.webhooks.registry import WebhookRegistry
from hookshot.webhooks.signing import compute_signature, verify_signature


@pytest.fixture
def registry(memory_store: InMemoryWebhookStore) -> WebhookRegistry:
    return WebhookRegistry(memory_store, settings=Settings(max_webhooks_per_owner=3))


class TestRegister:
    """Tests for WebhookRegistry.register."""

    async def test_returns_secret_once(
        self, registry: WebhookRegistry, memory_store: InMemoryWebhookStore
    ) -> None:
        """Registration should return the plaintext secret alongside the view."""
        registered = await registry.register(
            owner_id="user_1",
            url="https://example.com/hooks",
            events=["post.created", "comment.created"],
            name="My hook",
        )

        assert registered.secret.startswith("whsec_")
        assert registered.subscriber.has_secret is True
        assert registered.subscriber.events == ["post.created", "comment.created"]
        assert registered.subscriber.name == "My hook"

        stored = await memory_store.get_subscriber(registered.subscriber.id)
        assert stored is not None
        assert stored.signing_key() == registered.secret

    async def test_duplicate_events_collapsed(self, registry: WebhookRegistry) -> None:
        registered = await registry.register(
            "user_1", "https://example.com/hooks", ["post.created", "post.created"]
        )

        assert registered.subscriber.events == ["post.created"]

    @pytest.mark.parametrize("url", ["ftp://example.com/hooks", "not-a-url", ""])
    async def test_rejects_bad_url(self, registry: WebhookRegistry, url: str) -> None:
        """Non-http(s) URLs should be rejected with the url field named."""
        with pytest.raises(ValidationError) as exc_info:
            await registry.register("user_1", url, ["post.created"])

        assert exc_info.value.field == "url"

    async def test_rejects_empty_events(self, registry: WebhookRegistry) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await registry.register("user_1", "https://example.com/hooks", [])

        assert exc_info.value.field == "events"

    async def test_rejects_unknown_events(self, registry: WebhookRegistry) -> None:
        with pytest.raises(ValidationError, match="post.exploded"):
            await registry.register("user_1", "https://example.com/hooks", ["post.exploded"])

    async def test_owner_limit(self, registry: WebhookRegistry) -> None:
        """The fourth registration for one owner should hit the limit."""
        for i in range(3):
            await registry.register("user_1", f"https://example{i}.com/hooks", ["post.created"])

        with pytest.raises(LimitExceededError) as exc_info:
            await registry.register("user_1", "https://example.com/hooks", ["post.created"])

        assert exc_info.value.limit == 3
        # Other owners are unaffected
        await registry.register("user_2", "https://example.com/hooks", ["post.created"])

    async def test_concurrent_registrations_never_exceed_limit(self) -> None:
        """Registrations racing past the first check should be rolled back."""

        class YieldingStore(InMemoryWebhookStore):
            async def count_subscribers(self, owner_id: str) -> int:
                count = await super().count_subscribers(owner_id)
                await asyncio.sleep(0.01)
                return count

        store = YieldingStore()
        registry = WebhookRegistry(store, settings=Settings(max_webhooks_per_owner=3))
        for i in range(2):
            await registry.register("user_1", f"https://example{i}.com/hooks", ["post.created"])

        results = await asyncio.gather(
            *(
                registry.register("user_1", f"https://race{i}.com/hooks", ["post.created"])
                for i in range(2)
            ),
            return_exceptions=True,
        )

        assert await store.count_subscribers("user_1") <= 3
        assert any(isinstance(r, LimitExceededError) for r in results)
        for result in results:
            if isinstance(result, BaseException):
                assert isinstance(result, LimitExceededError)


class TestManage:
    """Tests for reading, updating and deleting subscribers."""

    async def test_list_and_get(self, registry: WebhookRegistry) -> None:
        registered = await registry.register("user_1", "https://example.com/a", ["post.created"])
        await registry.register("user_2", "https://example.com/b", ["post.created"])

        listed = await registry.list_subscribers("user_1")
        fetched = await registry.get("user_1", registered.subscriber.id)

        assert [s.id for s in listed] == [registered.subscriber.id]
        assert fetched == registered.subscriber

    async def test_get_other_owner_not_found(self, registry: WebhookRegistry) -> None:
        """Owners should not see each other's subscribers."""
        registered = await registry.register("user_1", "https://example.com/a", ["post.created"])

        with pytest.raises(NotFoundError):
            await registry.get("user_2", registered.subscriber.id)

    async def test_get_unknown(self, registry: WebhookRegistry) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await registry.get("user_1", "whk_missing")

        assert exc_info.value.resource_type == "subscriber"

    async def test_update_keeps_secret(
        self, registry: WebhookRegistry, memory_store: InMemoryWebhookStore
    ) -> None:
        """Updating settings should not change the signing secret."""
        registered = await registry.register("user_1", "https://example.com/a", ["post.created"])

        view = await registry.update(
            "user_1",
            registered.subscriber.id,
            url="https://example.com/b",
            events=["comment.created"],
            active=False,
        )

        assert view.url == "https://example.com/b"
        assert view.events == ["comment.created"]
        assert view.active is False
        assert view.updated_at >= registered.subscriber.updated_at
        stored = await memory_store.get_subscriber(registered.subscriber.id)
        assert stored is not None
        assert stored.signing_key() == registered.secret

    async def test_update_validates(self, registry: WebhookRegistry) -> None:
        registered = await registry.register("user_1", "https://example.com/a", ["post.created"])

        with pytest.raises(ValidationError):
            await registry.update("user_1", registered.subscriber.id, url="ftp://nope")

    async def test_rotate_secret(
        self, registry: WebhookRegistry, memory_store: InMemoryWebhookStore
    ) -> None:
        """After rotation only the new secret should verify."""
        registered = await registry.register("user_1", "https://example.com/a", ["post.created"])

        new_secret = await registry.rotate_secret("user_1", registered.subscriber.id)

        assert new_secret != registered.secret
        stored = await memory_store.get_subscriber(registered.subscriber.id)
        assert stored is not None
        signature = compute_signature("{}", stored.signing_key(), 1_700_000_000)
        assert verify_signature("{}", signature, new_secret, 1_700_000_000, now=1_700_000_000)
        assert not verify_signature(
            "{}", signature, registered.secret, 1_700_000_000, now=1_700_000_000
        )

    async def test_delete(self, registry: WebhookRegistry) -> None:
        registered = await registry.register("user_1", "https://example.com/a", ["post.created"])

        assert await registry.delete("user_1", registered.subscriber.id) is True
        with pytest.raises(NotFoundError):
            await registry.get("user_1", registered.subscriber.id)

    async def test_deliveries(
        self, registry: WebhookRegistry, memory_store: InMemoryWebhookStore
    ) -> None:
        """Delivery history should be newest first and limited."""
        registered = await registry.register("user_1", "https://example.com/a", ["post.created"])
        subscriber_id = registered.subscriber.id
        for _ in range(3):
            await memory_store.create_delivery(subscriber_id, "post.created", {"event": "x"})

        deliveries = await registry.deliveries("user_1", subscriber_id, limit=2)

        assert len(deliveries) == 2
        assert deliveries[0].created_at >= deliveries[1].created_at

    async def test_send_test_requires_dispatcher(self, registry: WebhookRegistry) -> None:
        registered = await registry.register("user_1", "https://example.com/a", ["post.created"])

        with pytest.raises(RuntimeError):
            await registry.send_test("user_1", registered.subscriber.id)

    async def test_send_test(self, memory_store: InMemoryWebhookStore) -> None:
        dispatcher = AsyncMock()
        dispatcher.send_test.return_value = DeliveryResult(success=True, status_code=200)
        registry = WebhookRegistry(memory_store, dispatcher=dispatcher)
        registered = await registry.register("user_1", "https://example.com/a", ["post.created"])

        result = await registry.send_test("user_1", registered.subscriber.id)

        assert result.success is True
        assert dispatcher.send_test.call_args.args[0].id == registered.subscriber.id
