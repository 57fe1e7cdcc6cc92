"""HMAC-SHA256 signing and verification for webhook payloads.

Signatures cover ``"{unix_timestamp}.{raw body}"`` so a captured request
cannot be replayed outside the tolerance window, and are sent as
``v1=<hex digest>``. Verification never raises: malformed input is simply
not valid.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from collections.abc import Mapping

import httpx

from hookshot.models import VerificationResult

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
EVENT_HEADER = "X-Webhook-Event"
DELIVERY_ID_HEADER = "X-Webhook-Delivery-Id"

SIGNATURE_VERSION = "v1"
DEFAULT_TOLERANCE_SECONDS = 300
SECRET_PREFIX = "whsec_"


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def _digest(payload: str | bytes, secret: str | bytes, timestamp: int) -> str:
    message = f"{timestamp}.".encode() + _to_bytes(payload)
    return hmac.new(
        key=_to_bytes(secret),
        msg=message,
        digestmod=hashlib.sha256,
    ).hexdigest()


def _is_stale(timestamp: int, tolerance_seconds: int, now: int | None) -> bool:
    current = int(time.time()) if now is None else now
    return abs(current - timestamp) > tolerance_seconds


def compute_signature(payload: str | bytes, secret: str | bytes, timestamp: int) -> str:
    """Compute the HMAC-SHA256 signature for a webhook payload.

    Args:
        payload: Raw JSON body that will be sent.
        secret: Subscriber's shared secret.
        timestamp: Unix seconds, sent alongside in X-Webhook-Timestamp.

    Returns:
        Signature in format "v1=<hex_digest>".
    """
    return f"{SIGNATURE_VERSION}={_digest(payload, secret, timestamp)}"


def verify_signature(
    payload: str | bytes,
    signature: str,
    secret: str | bytes,
    timestamp: int,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: int | None = None,
) -> bool:
    """Verify a "v1=<hex>" signature for a webhook payload.

    The timestamp window is checked before any cryptographic comparison,
    so a stale request is rejected even when its signature is genuine.

    Args:
        payload: Raw body that was signed.
        signature: Signature to verify (format: "v1=<hex_digest>").
        secret: Shared secret for HMAC.
        timestamp: Unix seconds the signature was made at.
        tolerance_seconds: Maximum allowed clock distance from ``now``.
        now: Current unix seconds; defaults to the system clock.

    Returns:
        True if the signature is valid and fresh, False otherwise.
    """
    if _is_stale(timestamp, tolerance_seconds, now):
        return False

    if not isinstance(signature, str):
        return False
    try:
        provided = signature.encode("ascii")
    except UnicodeEncodeError:
        return False

    expected = compute_signature(payload, secret, timestamp).encode("ascii")
    return hmac.compare_digest(expected, provided)


def generate_secret() -> str:
    """Generate a new subscriber secret ("whsec_" + 24 random bytes, base64url)."""
    return f"{SECRET_PREFIX}{secrets.token_urlsafe(24)}"


def build_signature_header(payload: str | bytes, secret: str | bytes, timestamp: int) -> str:
    """Build a combined "t=<ts>,v1=<hex>" header value."""
    return f"t={timestamp},{SIGNATURE_VERSION}={_digest(payload, secret, timestamp)}"


def parse_signature_header(header: str) -> tuple[int, list[str]] | None:
    """Parse a combined "t=<ts>,v1=<hex>[,v1=<hex>...]" header.

    Returns:
        (timestamp, signatures) or None if the header is malformed.
    """
    timestamp = 0
    signatures: list[str] = []

    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None
        elif key == SIGNATURE_VERSION and value:
            signatures.append(value)

    if not timestamp or not signatures:
        return None
    return timestamp, signatures


def verify_signature_header(
    payload: str | bytes,
    header: str,
    secret: str | bytes,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: int | None = None,
) -> VerificationResult:
    """Verify a combined "t=...,v1=..." header, reporting why it failed.

    Any one of several v1 signatures matching is enough, which lets a
    sender overlap old and new secrets during rotation.
    """
    parsed = parse_signature_header(header)
    if parsed is None:
        return VerificationResult(valid=False, error="Invalid signature format")

    timestamp, signatures = parsed
    if _is_stale(timestamp, tolerance_seconds, now):
        return VerificationResult(valid=False, error="Timestamp outside tolerance window")

    expected = _digest(payload, secret, timestamp).encode("ascii")
    for candidate in signatures:
        try:
            provided = candidate.encode("ascii")
        except UnicodeEncodeError:
            continue
        if hmac.compare_digest(expected, provided):
            return VerificationResult(valid=True)

    return VerificationResult(valid=False, error="Signature mismatch")


def verify_request(
    headers: Mapping[str, str],
    body: str | bytes,
    secret: str | bytes,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: int | None = None,
) -> VerificationResult:
    """Verify a delivery as received by a subscriber.

    Reads X-Webhook-Signature and X-Webhook-Timestamp (case-insensitive)
    and checks them against the raw request body.

    Example:
        ```python
        result = verify_request(request.headers, await request.body(), secret)
        if not result.valid:
            return Response(status_code=401, content=result.error)
        ```
    """
    lookup = httpx.Headers(dict(headers))

    signature = lookup.get(SIGNATURE_HEADER)
    if not signature:
        return VerificationResult(valid=False, error="Missing signature header")

    raw_timestamp = lookup.get(TIMESTAMP_HEADER)
    if not raw_timestamp:
        return VerificationResult(valid=False, error="Missing timestamp header")

    try:
        timestamp = int(raw_timestamp)
    except ValueError:
        return VerificationResult(valid=False, error="Invalid timestamp header")

    if _is_stale(timestamp, tolerance_seconds, now):
        return VerificationResult(valid=False, error="Timestamp outside tolerance window")

    if not verify_signature(body, signature, secret, timestamp, tolerance_seconds, now):
        return VerificationResult(valid=False, error="Signature mismatch")

    return VerificationResult(valid=True)
