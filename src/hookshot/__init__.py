"""Hookshot: signed webhook delivery.

Delivers domain events to registered HTTP endpoints with HMAC-SHA256
signatures, persisted attempt history and a fixed retry schedule.

Quick Start:
    from hookshot.service import WebhookService

    async with WebhookService.create() as hooks:
        # Register an endpoint; the secret is returned once
        registered = await hooks.registry.register(
            owner_id="user_123",
            url="https://example.com/hooks",
            events=["post.created", "comment.created"],
        )

        # Fan an event out to every subscriber
        await hooks.dispatch("post.created", {"id": "post_1"})

        # Re-attempt failed deliveries (run on a schedule)
        await hooks.process_pending_retries()

Receiving side:
    from hookshot.webhooks import verify_request

    result = verify_request(request.headers, raw_body, secret)
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    HookshotError,
    LimitExceededError,
    NotFoundError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import configure_logging, delivery_context, get_logger

# Models
from .models import (
    ALL_EVENT_TYPES,
    DeliveryResult,
    EventType,
    RegisteredSubscriber,
    RetrySweepResult,
    Subscriber,
    SubscriberView,
    VerificationResult,
    WebhookDelivery,
    WebhookEnvelope,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "HookshotError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "ConfigurationError",
    "LimitExceededError",
    # Logging
    "configure_logging",
    "get_logger",
    "delivery_context",
    # Models
    "ALL_EVENT_TYPES",
    "EventType",
    "Subscriber",
    "SubscriberView",
    "RegisteredSubscriber",
    "WebhookEnvelope",
    "WebhookDelivery",
    "DeliveryResult",
    "RetrySweepResult",
    "VerificationResult",
]
