"""Delivery tracking models.

A WebhookDelivery is the persisted state of one subscriber's attempts to
receive one dispatched event. DeliveryResult is the outcome of a single
attempt as reported by the executor.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now
from .webhook import EventType, Subscriber, WebhookEnvelope

# pending only exists between record creation and the first attempt outcome
DeliveryStatus = Literal["pending", "success", "failed"]


class WebhookDelivery(BaseModel):
    """Record of one event's delivery to one subscriber.

    Attributes:
        id: Unique identifier, also sent as X-Webhook-Delivery-Id.
        subscriber_id: Subscriber this delivery targets.
        event: Event type being delivered.
        payload: Envelope value copy taken at dispatch time.
        status: pending, success or failed.
        attempt_count: Attempts made so far, first attempt included.
        status_code: HTTP status of the last attempt, if a response arrived.
        response_body: Last response body, truncated.
        error_message: Why the last attempt failed.
        next_retry_at: When the retry scheduler may pick this up again.
        created_at: When the record was created.
        delivered_at: When delivery succeeded.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    subscriber_id: str = Field(description="ID of the subscriber")
    event: EventType = Field(description="Event type")
    payload: dict[str, Any] = Field(description="Envelope as sent to the subscriber")
    status: DeliveryStatus = Field(default="pending", description="Delivery status")
    attempt_count: int = Field(default=0, ge=0, description="Attempts made so far")
    status_code: int | None = Field(default=None, description="HTTP response status code")
    response_body: str | None = Field(default=None, description="Truncated response body")
    error_message: str | None = Field(default=None, description="Last failure reason")
    next_retry_at: datetime | None = Field(default=None, description="Next retry time")
    created_at: datetime = Field(default_factory=utc_now)
    delivered_at: datetime | None = Field(default=None)

    def envelope(self) -> WebhookEnvelope:
        """Rebuild the original envelope from the stored payload."""
        return WebhookEnvelope.model_validate(self.payload)

    @property
    def is_terminal(self) -> bool:
        """True once the record will never be attempted again."""
        return self.status == "success" or (
            self.status == "failed" and self.next_retry_at is None
        )

    def is_due(self, now: datetime, max_retries: int) -> bool:
        """Whether the retry scheduler should pick this record up at ``now``."""
        return (
            self.status == "failed"
            and self.attempt_count < max_retries
            and self.next_retry_at is not None
            and self.next_retry_at < now
        )


class DeliveryResult(BaseModel):
    """Outcome of a single delivery attempt."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    status_code: int | None = None
    response_body: str | None = None
    error_message: str | None = None


class DueDelivery(BaseModel):
    """A delivery due for retry, joined with its subscriber.

    ``subscriber`` is None when the subscriber has been deleted.
    """

    model_config = ConfigDict(extra="forbid")

    delivery: WebhookDelivery
    subscriber: Subscriber | None = None


class RetrySweepResult(BaseModel):
    """Counts from one retry sweep."""

    model_config = ConfigDict(extra="forbid")

    processed: int = Field(default=0, ge=0, description="Records examined")
    succeeded: int = Field(default=0, ge=0, description="Retries that delivered")
    rescheduled: int = Field(default=0, ge=0, description="Retries that failed with attempts left")
    exhausted: int = Field(default=0, ge=0, description="Records that ran out of attempts")
    abandoned: int = Field(
        default=0, ge=0, description="Records dropped because the subscriber is gone or inactive"
    )
    errors: int = Field(default=0, ge=0, description="Records whose outcome could not be saved")


class VerificationResult(BaseModel):
    """Outcome of verifying an inbound signature, with a reason on failure."""

    model_config = ConfigDict(extra="forbid")

    valid: bool
    error: str | None = None


__all__ = [
    "DeliveryResult",
    "DeliveryStatus",
    "DueDelivery",
    "RetrySweepResult",
    "VerificationResult",
    "WebhookDelivery",
]
