"""Single-attempt webhook delivery over HTTP.

The executor signs an envelope, POSTs it once and reports the outcome as a
DeliveryResult. It knows nothing about retry counts, persistence or
subscriber lists, and it never raises for delivery problems.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

import httpx

from hookshot.models import DeliveryResult

from .signing import (
    DELIVERY_ID_HEADER,
    EVENT_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    compute_signature,
)

if TYPE_CHECKING:
    from hookshot.models import Subscriber, WebhookEnvelope

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_BODY_LIMIT = 1000
DEFAULT_USER_AGENT = "Hookshot-Webhook/1.0"


class DeliveryExecutor:
    """Performs exactly one signed POST of an envelope to a subscriber.

    Example:
        ```python
        async with DeliveryExecutor() as executor:
            result = await executor.deliver(subscriber, envelope, delivery.id)
            if not result.success:
                print(result.error_message)
        ```

    Tests inject a client built on ``httpx.MockTransport``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        response_body_limit: int = DEFAULT_BODY_LIMIT,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        """Initialize the executor.

        Args:
            client: Shared HTTP client. One is created (and owned) if None.
            timeout_seconds: Hard limit for the whole attempt.
            response_body_limit: Bytes of response body to keep.
            user_agent: User-Agent header value.
        """
        self._timeout = timeout_seconds
        self._body_limit = response_body_limit
        self._user_agent = user_agent
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout_seconds,
            follow_redirects=False,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        """The underlying HTTP client."""
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this executor created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> DeliveryExecutor:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    def build_headers(
        self,
        envelope: WebhookEnvelope,
        delivery_id: str,
        signature: str,
        timestamp: int,
    ) -> dict[str, str]:
        """Headers for one attempt. Only signature and timestamp vary between attempts."""
        return {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: signature,
            TIMESTAMP_HEADER: str(timestamp),
            EVENT_HEADER: envelope.event,
            DELIVERY_ID_HEADER: delivery_id,
            "User-Agent": self._user_agent,
        }

    async def deliver(
        self,
        subscriber: Subscriber,
        envelope: WebhookEnvelope,
        delivery_id: str,
    ) -> DeliveryResult:
        """Attempt one delivery.

        Args:
            subscriber: Target endpoint and signing secret.
            envelope: Event to send; serialized identically on every attempt.
            delivery_id: Correlation id sent as X-Webhook-Delivery-Id.

        Returns:
            DeliveryResult. success is True only for 2xx responses.
        """
        timestamp = int(time.time())
        body = envelope.to_json()
        signature = compute_signature(body, subscriber.signing_key(), timestamp)
        headers = self.build_headers(envelope, delivery_id, signature, timestamp)

        try:
            async with asyncio.timeout(self._timeout):
                async with self._client.stream(
                    "POST",
                    str(subscriber.url),
                    content=body.encode("utf-8"),
                    headers=headers,
                ) as response:
                    response_body = await self._read_body(response)
                    status_code = response.status_code
                    reason = response.reason_phrase

        except (TimeoutError, httpx.TimeoutException):
            logger.info("Webhook attempt timed out: %s to %s", envelope.event, subscriber.url)
            return DeliveryResult(success=False, error_message="Request timed out")
        except httpx.HTTPError as e:
            logger.info(
                "Webhook attempt failed before response: %s to %s (%s)",
                envelope.event,
                subscriber.url,
                type(e).__name__,
            )
            return DeliveryResult(success=False, error_message=str(e) or type(e).__name__)
        except Exception as e:
            logger.exception("Webhook delivery error: %s", type(e).__name__)
            return DeliveryResult(success=False, error_message=f"Unexpected error: {e}")

        if 200 <= status_code < 300:
            return DeliveryResult(
                success=True,
                status_code=status_code,
                response_body=response_body,
            )

        return DeliveryResult(
            success=False,
            status_code=status_code,
            response_body=response_body,
            error_message=f"HTTP {status_code}: {reason}",
        )

    async def _read_body(self, response: httpx.Response) -> str:
        """Read at most the configured byte budget of the response body."""
        if self._body_limit == 0:
            return ""

        buffer = bytearray()
        try:
            async for chunk in response.aiter_bytes():
                buffer.extend(chunk)
                if len(buffer) >= self._body_limit:
                    break
        except httpx.HTTPError as e:
            # Status already received; keep whatever body arrived.
            logger.debug("Response body read interrupted: %s", type(e).__name__)

        return bytes(buffer[: self._body_limit]).decode(
            response.encoding or "utf-8", errors="replace"
        )
