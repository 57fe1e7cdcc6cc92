"""Shared helpers for Hookshot models."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4


def generate_id(prefix: str) -> str:
    """Generate a unique ID with the given prefix.

    Examples:
        generate_id("whk") -> "whk_a1b2c3d4e5f6"
        generate_id("dlv") -> "dlv_a1b2c3d4e5f6"
    """
    return f"{prefix}_{uuid4().hex[:12]}"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def isoformat_z(moment: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision.

    Produces the ``2024-01-01T12:00:00.000Z`` form subscribers expect in
    the envelope ``timestamp`` field.
    """
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
