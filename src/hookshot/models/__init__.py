"""Data models for Hookshot.

Subscribers and envelopes:
    - Subscriber: Registered endpoint with its signing secret
    - SubscriberView: Owner-facing view (has_secret instead of the secret)
    - RegisteredSubscriber: Registration result carrying the one-time secret
    - WebhookEnvelope: Immutable event body sent to subscribers

Delivery tracking:
    - WebhookDelivery: Persisted attempt history for one subscriber/event
    - DeliveryResult: Outcome of a single HTTP attempt
    - DueDelivery: Retry candidate joined with its subscriber
    - RetrySweepResult: Counts from one retry sweep
    - VerificationResult: Inbound signature check outcome
"""

from .base import generate_id, isoformat_z, utc_now
from .delivery import (
    DeliveryResult,
    DeliveryStatus,
    DueDelivery,
    RetrySweepResult,
    VerificationResult,
    WebhookDelivery,
)
from .webhook import (
    ALL_EVENT_TYPES,
    EventType,
    RegisteredSubscriber,
    Subscriber,
    SubscriberView,
    WebhookEnvelope,
    is_event_type,
)

__all__ = [
    # Helpers
    "generate_id",
    "isoformat_z",
    "utc_now",
    # Subscribers and envelopes
    "ALL_EVENT_TYPES",
    "EventType",
    "RegisteredSubscriber",
    "Subscriber",
    "SubscriberView",
    "WebhookEnvelope",
    "is_event_type",
    # Delivery tracking
    "DeliveryResult",
    "DeliveryStatus",
    "DueDelivery",
    "RetrySweepResult",
    "VerificationResult",
    "WebhookDelivery",
]
