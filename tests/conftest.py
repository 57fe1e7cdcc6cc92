"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import inspect
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest

from hookshot.config import Settings
from hookshot.models import Subscriber
from hookshot.storage import InMemoryWebhookStore
from hookshot.webhooks import DeliveryExecutor

# Add tests directory to path so helpers can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

TEST_SECRET = "whsec_test"

Handler = Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served.

    Example:
        ```python
        transport = RecordingTransport(lambda request: httpx.Response(200))
        executor = make_executor(transport)
        await executor.deliver(subscriber, envelope, "dlv_1")
        assert transport.requests[0].headers["X-Webhook-Event"] == "post.created"
        ```
    """

    def __init__(self, handler: Handler) -> None:
        self.requests: list[httpx.Request] = []

        async def record(request: httpx.Request) -> httpx.Response:
            await request.aread()
            self.requests.append(request)
            response = handler(request)
            if inspect.isawaitable(response):
                response = await response
            return response

        super().__init__(record)


def make_executor(
    transport: httpx.MockTransport,
    timeout_seconds: float = 5.0,
    response_body_limit: int = 1000,
) -> DeliveryExecutor:
    """Build an executor whose client routes through ``transport``."""
    return DeliveryExecutor(
        client=httpx.AsyncClient(transport=transport),
        timeout_seconds=timeout_seconds,
        response_body_limit=response_body_limit,
    )


def make_subscriber(
    url: str = "https://example.com/webhook",
    events: list[str] | None = None,
    owner_id: str = "user_1",
    active: bool = True,
    **kwargs: object,
) -> Subscriber:
    """Build a subscriber with the shared test secret."""
    return Subscriber(
        owner_id=owner_id,
        url=url,
        secret=TEST_SECRET,
        events=events or ["post.created", "post.published"],
        active=active,
        **kwargs,
    )


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment's HOOKSHOT_* variables."""
    return Settings(
        env="test",
        storage_backend="memory",
        delivery_timeout_seconds=5.0,
        _env_file=None,  # type: ignore[call-arg]
    )


@pytest.fixture
def memory_store() -> InMemoryWebhookStore:
    """Fresh in-memory store."""
    return InMemoryWebhookStore()


@pytest.fixture
def sample_subscriber() -> Subscriber:
    """Active subscriber for post.created and post.published."""
    return make_subscriber()


@pytest.fixture
def mock_store() -> AsyncMock:
    """Create a mock store instance."""
    store = AsyncMock()
    store.find_subscribers = AsyncMock(return_value=[])
    store.create_delivery = AsyncMock()
    store.update_delivery = AsyncMock()
    store.touch_subscriber = AsyncMock()
    store.find_due_retries = AsyncMock(return_value=[])
    return store
