"""Tests for the single-attempt delivery executor."""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest
from conftest import TEST_SECRET, RecordingTransport, make_executor

from hookshot.models import Subscriber, WebhookEnvelope
from hookshot.webhooks import executor as executor_module
from hookshot.webhooks.executor import DeliveryExecutor
from hookshot.webhooks.signing import verify_signature


@pytest.fixture
def envelope() -> WebhookEnvelope:
    return WebhookEnvelope(event="post.created", data={"id": "post_1", "title": "Hi"})


class TestDeliveryExecutor:
    """Tests for DeliveryExecutor.deliver."""

    async def test_success_on_2xx(
        self, sample_subscriber: Subscriber, envelope: WebhookEnvelope
    ) -> None:
        """A 2xx response should be a success with status and body."""
        transport = RecordingTransport(lambda request: httpx.Response(200, text="OK"))
        executor = make_executor(transport)

        result = await executor.deliver(sample_subscriber, envelope, "dlv_1")

        assert result.success is True
        assert result.status_code == 200
        assert result.response_body == "OK"
        assert result.error_message is None

    @pytest.mark.parametrize("status", [201, 202, 204, 299])
    async def test_any_2xx_is_success(
        self, sample_subscriber: Subscriber, envelope: WebhookEnvelope, status: int
    ) -> None:
        executor = make_executor(RecordingTransport(lambda request: httpx.Response(status)))

        result = await executor.deliver(sample_subscriber, envelope, "dlv_1")

        assert result.success is True
        assert result.status_code == status

    @pytest.mark.parametrize(
        ("status", "message"),
        [
            (500, "HTTP 500: Internal Server Error"),
            (404, "HTTP 404: Not Found"),
            (301, "HTTP 301: Moved Permanently"),
            (410, "HTTP 410: Gone"),
        ],
    )
    async def test_non_2xx_is_failure(
        self,
        sample_subscriber: Subscriber,
        envelope: WebhookEnvelope,
        status: int,
        message: str,
    ) -> None:
        """Every non-2xx status should fail with the status line as the error."""
        executor = make_executor(
            RecordingTransport(lambda request: httpx.Response(status, text="nope"))
        )

        result = await executor.deliver(sample_subscriber, envelope, "dlv_1")

        assert result.success is False
        assert result.status_code == status
        assert result.response_body == "nope"
        assert result.error_message == message

    async def test_sends_signed_headers(
        self, sample_subscriber: Subscriber, envelope: WebhookEnvelope
    ) -> None:
        """Requests should carry the signature, timestamp, event and delivery id."""
        transport = RecordingTransport(lambda request: httpx.Response(200))
        executor = make_executor(transport)

        await executor.deliver(sample_subscriber, envelope, "dlv_abc")

        request = transport.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://example.com/webhook"
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["User-Agent"] == "Hookshot-Webhook/1.0"
        assert request.headers["X-Webhook-Event"] == "post.created"
        assert request.headers["X-Webhook-Delivery-Id"] == "dlv_abc"

        timestamp = int(request.headers["X-Webhook-Timestamp"])
        assert verify_signature(
            request.content,
            request.headers["X-Webhook-Signature"],
            TEST_SECRET,
            timestamp,
        )

    async def test_body_is_envelope_json(
        self, sample_subscriber: Subscriber, envelope: WebhookEnvelope
    ) -> None:
        """The request body should be exactly the envelope serialization."""
        transport = RecordingTransport(lambda request: httpx.Response(200))
        executor = make_executor(transport)

        await executor.deliver(sample_subscriber, envelope, "dlv_1")

        body = transport.requests[0].content
        assert body == envelope.to_json().encode()
        assert json.loads(body)["data"] == {"id": "post_1", "title": "Hi"}

    async def test_response_body_truncated(
        self, sample_subscriber: Subscriber, envelope: WebhookEnvelope
    ) -> None:
        """Response bodies beyond the limit should be cut to the limit."""
        executor = make_executor(
            RecordingTransport(lambda request: httpx.Response(500, text="x" * 5000)),
            response_body_limit=1000,
        )

        result = await executor.deliver(sample_subscriber, envelope, "dlv_1")

        assert result.response_body == "x" * 1000

    async def test_zero_body_limit(
        self, sample_subscriber: Subscriber, envelope: WebhookEnvelope
    ) -> None:
        executor = make_executor(
            RecordingTransport(lambda request: httpx.Response(200, text="ignored")),
            response_body_limit=0,
        )

        result = await executor.deliver(sample_subscriber, envelope, "dlv_1")

        assert result.success is True
        assert result.response_body == ""

    async def test_timeout(self, sample_subscriber: Subscriber, envelope: WebhookEnvelope) -> None:
        """A slow endpoint should fail with "Request timed out" and no status."""

        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        executor = make_executor(RecordingTransport(slow), timeout_seconds=0.05)

        result = await executor.deliver(sample_subscriber, envelope, "dlv_1")

        assert result.success is False
        assert result.status_code is None
        assert result.error_message == "Request timed out"

    async def test_httpx_timeout_exception(
        self, sample_subscriber: Subscriber, envelope: WebhookEnvelope
    ) -> None:
        """Transport-level timeouts should map to the same message."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        executor = make_executor(RecordingTransport(handler))

        result = await executor.deliver(sample_subscriber, envelope, "dlv_1")

        assert result.error_message == "Request timed out"

    async def test_connection_error(
        self, sample_subscriber: Subscriber, envelope: WebhookEnvelope
    ) -> None:
        """Network errors should fail with the error text and no status."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        executor = make_executor(RecordingTransport(handler))

        result = await executor.deliver(sample_subscriber, envelope, "dlv_1")

        assert result.success is False
        assert result.status_code is None
        assert result.response_body is None
        assert result.error_message == "Connection refused"

    async def test_unexpected_error_does_not_raise(
        self, sample_subscriber: Subscriber, envelope: WebhookEnvelope
    ) -> None:
        """Any other exception should become a failed result."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise RuntimeError("boom")

        executor = make_executor(RecordingTransport(handler))

        result = await executor.deliver(sample_subscriber, envelope, "dlv_1")

        assert result.success is False
        assert result.error_message == "Unexpected error: boom"

    async def test_fresh_timestamp_each_attempt(
        self,
        sample_subscriber: Subscriber,
        envelope: WebhookEnvelope,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Re-sending an envelope should re-sign with a new timestamp but the same body."""
        clock = iter([1_700_000_000, 1_700_000_600])
        monkeypatch.setattr(executor_module, "time", SimpleNamespace(time=lambda: next(clock)))
        transport = RecordingTransport(lambda request: httpx.Response(500))
        executor = make_executor(transport)

        await executor.deliver(sample_subscriber, envelope, "dlv_1")
        await executor.deliver(sample_subscriber, envelope, "dlv_1")

        first, second = transport.requests
        assert first.content == second.content
        assert first.headers["X-Webhook-Timestamp"] == "1700000000"
        assert second.headers["X-Webhook-Timestamp"] == "1700000600"
        assert first.headers["X-Webhook-Signature"] != second.headers["X-Webhook-Signature"]


class TestExecutorLifecycle:
    """Tests for client ownership."""

    async def test_injected_client_not_closed(self) -> None:
        """aclose() should leave a caller-provided client open."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        executor = DeliveryExecutor(client=client)

        await executor.aclose()

        assert client.is_closed is False
        await client.aclose()

    async def test_owned_client_closed(self) -> None:
        """A client created by the executor should be closed on exit."""
        async with DeliveryExecutor() as executor:
            client = executor.client

        assert client.is_closed is True
