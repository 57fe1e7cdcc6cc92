"""Hookshot service layer.

WebhookService wires one store, one shared DeliveryExecutor, the
dispatcher, the retry scheduler and the registry from a single Settings
object.

Example:
    ```python
    from hookshot.service import WebhookService

    async with WebhookService.create() as hooks:
        registered = await hooks.registry.register(
            owner_id="user_123",
            url="https://example.com/hooks",
            events=["post.published"],
        )

        delivery_ids = await hooks.dispatch(
            "post.published",
            {"id": "post_1", "title": "Hello"},
        )

        # Called periodically by the surrounding worker
        result = await hooks.process_pending_retries()
    ```
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from hookshot.config import Settings
from hookshot.logging import configure_logging, delivery_context, get_logger
from hookshot.models import RetrySweepResult, VerificationResult
from hookshot.storage import WebhookStore, create_store
from hookshot.webhooks import (
    DeliveryExecutor,
    RetryScheduler,
    WebhookDispatcher,
    WebhookRegistry,
    verify_request,
)

logger = get_logger(__name__)


@dataclass
class WebhookService:
    """High-level webhook service.

    Attributes:
        store: Subscriber/delivery persistence.
        executor: HTTP executor shared by the dispatcher and scheduler.
        dispatcher: Fans events out to subscribers.
        scheduler: Re-attempts failed deliveries.
        registry: Owner-facing subscriber management.
        settings: Configuration settings.
    """

    store: WebhookStore
    executor: DeliveryExecutor
    dispatcher: WebhookDispatcher
    scheduler: RetryScheduler
    registry: WebhookRegistry
    settings: Settings

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        store: WebhookStore | None = None,
        executor: DeliveryExecutor | None = None,
    ) -> WebhookService:
        """Create a WebhookService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.
            store: Store to use instead of the one selected by settings.
            executor: Executor to use instead of one built from settings.
        """
        if settings is None:
            settings = Settings()
        configure_logging(settings)
        if store is None:
            store = create_store(settings)
        if executor is None:
            executor = DeliveryExecutor(
                timeout_seconds=settings.delivery_timeout_seconds,
                response_body_limit=settings.response_body_limit,
                user_agent=settings.user_agent,
            )

        dispatcher = WebhookDispatcher(store, executor=executor, settings=settings)
        return cls(
            store=store,
            executor=executor,
            dispatcher=dispatcher,
            scheduler=RetryScheduler(store, executor=executor, settings=settings),
            registry=WebhookRegistry(store, dispatcher=dispatcher, settings=settings),
            settings=settings,
        )

    async def initialize(self) -> None:
        """Initialize the service (storage collections, etc.)."""
        await self.store.initialize()
        logger.info(
            "Webhook service initialized",
            storage_backend=self.settings.storage_backend,
            max_retries=self.settings.max_retries,
        )

    async def close(self) -> None:
        """Close the HTTP client and the store."""
        await self.executor.aclose()
        await self.store.close()

    async def __aenter__(self) -> WebhookService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def dispatch(
        self,
        event_type: str,
        data: dict[str, Any] | None = None,
        owner_id: str | None = None,
    ) -> list[str]:
        """Dispatch an event to its subscribers. Returns delivery IDs."""
        with delivery_context(event_type=event_type, owner_id=owner_id):
            return await self.dispatcher.dispatch(event_type, data, owner_id=owner_id)

    async def process_pending_retries(self, now: datetime | None = None) -> RetrySweepResult:
        """Run one retry sweep."""
        result = await self.scheduler.process_pending_retries(now)
        if result.processed:
            logger.info("Retry sweep finished", **result.model_dump())
        return result

    def verify_request(
        self,
        headers: Mapping[str, str],
        body: str | bytes,
        secret: str,
    ) -> VerificationResult:
        """Check an inbound delivery using the configured tolerance window."""
        return verify_request(
            headers,
            body,
            secret,
            tolerance_seconds=self.settings.signature_tolerance_seconds,
        )


__all__ = ["WebhookService"]
