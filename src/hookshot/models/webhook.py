"""Webhook subscriber and event envelope models.

Provides subscriber registration and the immutable event envelope that is
serialized, signed and POSTed to subscriber endpoints.
"""

import copy
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, SecretStr, field_validator

from .base import generate_id, isoformat_z, utc_now

# Domain actions that can trigger webhooks
EventType = Literal[
    "post.created",
    "post.updated",
    "post.published",
    "post.deleted",
    "comment.created",
    "comment.deleted",
    "user.created",
    "user.updated",
    "user.deleted",
    "application.submitted",
    "application.approved",
    "application.rejected",
    "follow.created",
    "follow.deleted",
    "reaction.created",
    "reaction.deleted",
]

ALL_EVENT_TYPES: list[EventType] = [
    "post.created",
    "post.updated",
    "post.published",
    "post.deleted",
    "comment.created",
    "comment.deleted",
    "user.created",
    "user.updated",
    "user.deleted",
    "application.submitted",
    "application.approved",
    "application.rejected",
    "follow.created",
    "follow.deleted",
    "reaction.created",
    "reaction.deleted",
]


def is_event_type(value: str) -> bool:
    """Check whether a string is one of the supported event types."""
    return value in ALL_EVENT_TYPES


class Subscriber(BaseModel):
    """A registered webhook endpoint.

    The secret is held as a SecretStr so it is masked in repr(), str() and
    default serialization. Storage backends unwrap it explicitly; nothing
    else should.

    Attributes:
        id: Unique identifier for this subscriber.
        owner_id: Account that owns this registration.
        url: http(s) endpoint receiving deliveries.
        secret: Shared secret for HMAC-SHA256 signatures.
        events: Event types this subscriber wants delivered.
        active: Inactive subscribers receive nothing and stop retries.
        name: Optional display name.
        description: Optional human-readable description.
        created_at: When the subscriber was registered.
        updated_at: When the subscriber was last modified.
        last_triggered_at: When a delivery was last attempted.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    owner_id: str = Field(description="Account that owns this subscriber")
    url: HttpUrl = Field(description="http(s) endpoint to receive events")
    secret: SecretStr = Field(description="Shared secret for HMAC-SHA256 signatures")
    events: list[EventType] = Field(min_length=1, description="Subscribed event types")
    active: bool = Field(default=True, description="Whether the subscriber is active")
    name: str | None = Field(default=None, max_length=100, description="Display name")
    description: str | None = Field(
        default=None, max_length=500, description="Human-readable description"
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    last_triggered_at: datetime | None = Field(default=None)

    @property
    def has_secret(self) -> bool:
        """Whether a signing secret is set."""
        return bool(self.secret.get_secret_value())

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this subscriber is active and wants the event type."""
        return self.active and event_type in self.events

    def signing_key(self) -> str:
        """Plaintext secret, for the signer only."""
        return self.secret.get_secret_value()

    def to_view(self) -> "SubscriberView":
        """Public representation with the secret replaced by has_secret."""
        return SubscriberView(
            id=self.id,
            owner_id=self.owner_id,
            url=str(self.url),
            events=list(self.events),
            active=self.active,
            name=self.name,
            description=self.description,
            has_secret=self.has_secret,
            created_at=self.created_at,
            updated_at=self.updated_at,
            last_triggered_at=self.last_triggered_at,
        )


class SubscriberView(BaseModel):
    """Subscriber as exposed to owners. Never carries the secret."""

    model_config = ConfigDict(extra="forbid")

    id: str
    owner_id: str
    url: str
    events: list[EventType]
    active: bool
    name: str | None = None
    description: str | None = None
    has_secret: bool
    created_at: datetime
    updated_at: datetime
    last_triggered_at: datetime | None = None


class RegisteredSubscriber(BaseModel):
    """Result of a registration: the only time the secret is returned."""

    model_config = ConfigDict(extra="forbid")

    subscriber: SubscriberView
    secret: str = Field(description="Plaintext secret; store it, it is not shown again")


class WebhookEnvelope(BaseModel):
    """Event payload sent to subscriber endpoints.

    Immutable once constructed. The same envelope is shared by every
    subscriber of one dispatch and is rebuilt byte-for-byte from the stored
    delivery payload on retries.

    Attributes:
        event: Event type.
        timestamp: Envelope creation time, ISO-8601 UTC ("...Z").
        data: Event-specific payload; never interpreted here.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    event: EventType = Field(description="Event type")
    timestamp: str = Field(
        default_factory=lambda: isoformat_z(utc_now()),
        description="When the envelope was created",
    )
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific payload")

    @field_validator("data")
    @classmethod
    def _detach_data(cls, value: dict[str, Any]) -> dict[str, Any]:
        # Callers keep their own reference to the dict they passed in.
        return copy.deepcopy(value)

    def to_json(self) -> str:
        """Serialize to the wire body: {"event":..,"timestamp":..,"data":..}."""
        return self.model_dump_json()

    def to_payload(self) -> dict[str, Any]:
        """JSON-compatible dict persisted on the delivery record."""
        return self.model_dump(mode="json")

    @classmethod
    def for_test(cls) -> "WebhookEnvelope":
        """Envelope used to check that an endpoint is reachable."""
        return cls(
            event="post.created",
            data={
                "test": True,
                "message": "This is a test webhook from Hookshot",
            },
        )


__all__ = [
    "ALL_EVENT_TYPES",
    "EventType",
    "RegisteredSubscriber",
    "Subscriber",
    "SubscriberView",
    "WebhookEnvelope",
    "is_event_type",
]
