"""Webhook delivery engine.

Provides HMAC-signed webhook delivery with fan-out, persisted attempt
history and a fixed backoff retry schedule.

Example:
    ```python
    from hookshot.webhooks import WebhookDispatcher, dispatch_webhook_event

    # Using dispatcher directly
    dispatcher = WebhookDispatcher(store)
    delivery_ids = await dispatcher.dispatch("post.published", {"id": "post_1"})

    # Using convenience function
    await dispatch_webhook_event(
        store,
        event_type="comment.created",
        owner_id="user_123",
        comment_id="cmt_456",
    )
    ```
"""

from .backoff import MAX_RETRIES, RETRY_DELAYS, backoff_delay, next_retry_time
from .dispatcher import WebhookDispatcher, dispatch_webhook_event
from .executor import DeliveryExecutor
from .registry import WebhookRegistry
from .retry import INACTIVE_SUBSCRIBER_ERROR, RetryScheduler
from .signing import (
    DELIVERY_ID_HEADER,
    EVENT_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    build_signature_header,
    compute_signature,
    generate_secret,
    parse_signature_header,
    verify_request,
    verify_signature,
    verify_signature_header,
)

__all__ = [
    "DELIVERY_ID_HEADER",
    "DeliveryExecutor",
    "EVENT_HEADER",
    "INACTIVE_SUBSCRIBER_ERROR",
    "MAX_RETRIES",
    "RETRY_DELAYS",
    "RetryScheduler",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "WebhookDispatcher",
    "WebhookRegistry",
    "backoff_delay",
    "build_signature_header",
    "compute_signature",
    "dispatch_webhook_event",
    "generate_secret",
    "next_retry_time",
    "parse_signature_header",
    "verify_request",
    "verify_signature",
    "verify_signature_header",
]
