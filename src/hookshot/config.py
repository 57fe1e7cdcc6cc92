"""Configuration management for Hookshot."""

import logging
import warnings
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Seconds: 1m, 5m, 15m, 1h, 2h
DEFAULT_RETRY_DELAYS: list[int] = [60, 300, 900, 3600, 7200]


class Settings(BaseSettings):
    """Hookshot configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the HOOKSHOT_ prefix. For example:
        HOOKSHOT_STORAGE_BACKEND=qdrant
        HOOKSHOT_QDRANT_URL=http://localhost:6333
        HOOKSHOT_RETRY_DELAYS='[30, 120, 600]'
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    storage_backend: Literal["memory", "qdrant"] = Field(
        default="memory",
        description="Subscriber/delivery store: 'memory' (volatile) or 'qdrant'",
    )
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="hookshot",
        description="Prefix for Qdrant collection names",
    )
    storage_max_scroll_limit: int = Field(
        default=10000,
        ge=100,
        le=100000,
        description=(
            "Maximum records fetched by one paged scroll (owner listings, "
            "subscriber lookup)."
        ),
    )

    # Delivery
    delivery_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Hard timeout for a single delivery attempt",
    )
    response_body_limit: int = Field(
        default=1000,
        ge=0,
        le=65536,
        description="Bytes of subscriber response body kept on the delivery record",
    )
    user_agent: str = Field(
        default="Hookshot-Webhook/1.0",
        description="User-Agent header sent with deliveries",
    )
    max_concurrent_deliveries: int | None = Field(
        default=None,
        ge=1,
        le=1000,
        description=(
            "Cap on concurrent first attempts per dispatch. None sends to every "
            "subscriber at once; a cap makes dispatch time grow with subscriber count"
        ),
    )

    # Retry
    max_retries: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum delivery attempts per record, first attempt included",
    )
    retry_delays: list[int] = Field(
        default_factory=lambda: list(DEFAULT_RETRY_DELAYS),
        description="Backoff delays in seconds; the last entry repeats once exhausted",
    )
    retry_batch_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Maximum deliveries retried per sweep",
    )

    # Signing
    signature_tolerance_seconds: int = Field(
        default=300,
        ge=1,
        description="Replay window for signature verification",
    )

    # Registration
    max_webhooks_per_owner: int = Field(
        default=10,
        ge=1,
        description="Maximum subscribers a single owner may register",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    model_config = {
        "env_prefix": "HOOKSHOT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @field_validator("retry_delays")
    @classmethod
    def validate_retry_delays(cls, value: list[int]) -> list[int]:
        """Require a non-empty schedule of positive delays."""
        if not value:
            raise ValueError("retry_delays must contain at least one delay")
        if any(delay <= 0 for delay in value):
            raise ValueError(f"retry_delays must be positive, got {value}")
        return value

    @model_validator(mode="after")
    def warn_on_volatile_production_store(self) -> "Settings":
        """Warn when production runs on the in-memory store.

        Delivery records held in memory are lost on restart, so pending
        retries silently disappear.
        """
        if self.env == "production" and self.storage_backend == "memory":
            warnings.warn(
                "In-memory webhook store in production: pending retries are lost on restart. "
                "Set HOOKSHOT_STORAGE_BACKEND=qdrant.",
                UserWarning,
                stacklevel=2,
            )
            logger.warning("In-memory webhook store selected in production")
        return self


# Global settings instance
settings = Settings()
