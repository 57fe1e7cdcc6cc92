"""Storage backends for Hookshot.

Provides the WebhookStore interface and its implementations:
    - InMemoryWebhookStore: volatile, single-process
    - QdrantWebhookStore: persisted in Qdrant collections

Example:
    ```python
    from hookshot.storage import create_store

    async with create_store() as store:
        subscribers = await store.find_subscribers("post.created")
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hookshot.exceptions import ConfigurationError

from .base import WebhookStore
from .memory import InMemoryWebhookStore
from .qdrant import COLLECTION_NAMES, QdrantWebhookStore

if TYPE_CHECKING:
    from hookshot.config import Settings


def create_store(settings: Settings | None = None) -> WebhookStore:
    """Build the store selected by ``settings.storage_backend``.

    Raises:
        ConfigurationError: If the qdrant backend is selected without a URL.
    """
    from hookshot.config import Settings

    if settings is None:
        settings = Settings()

    if settings.storage_backend == "qdrant":
        if not settings.qdrant_url.strip():
            raise ConfigurationError("storage_backend is qdrant but qdrant_url is empty")
        return QdrantWebhookStore(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            prefix=settings.collection_prefix,
            scroll_limit=settings.storage_max_scroll_limit,
        )
    return InMemoryWebhookStore()


__all__ = [
    "COLLECTION_NAMES",
    "InMemoryWebhookStore",
    "QdrantWebhookStore",
    "WebhookStore",
    "create_store",
]
