"""Structured logging for Hookshot.

Delivery code logs through ``logging.getLogger(__name__)`` with %-style
messages. ``configure_logging()`` puts a structlog ``ProcessorFormatter`` on
the ``hookshot`` logger's stdout handler, so those records render exactly
like the structlog loggers from ``get_logger()``: JSON in production,
colored console text in development.

Ids bound with ``delivery_context()`` are merged into every line logged
inside the block, whichever kind of logger emits it. Context lives in
contextvars, so concurrent deliveries running in separate asyncio tasks do
not see each other's ids.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

from hookshot.config import Settings

if TYPE_CHECKING:
    from structlog.typing import Processor

HANDLER_NAME = "hookshot-structlog"

_PRE_CHAIN: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
]


def _renderers(log_format: str) -> list[Processor]:
    if log_format == "json":
        return [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ]
    return [structlog.dev.ConsoleRenderer(colors=True)]


def configure_logging(settings: Settings | None = None) -> None:
    """Route Hookshot's stdlib and structlog output through one renderer.

    Safe to call more than once; the previous Hookshot handler is replaced.

    Args:
        settings: Source of ``log_level`` and ``log_format``. Defaults if None.

    Example:
        ```python
        from hookshot.config import Settings
        from hookshot.logging import configure_logging, get_logger

        configure_logging(Settings(log_level="DEBUG", log_format="text"))
        get_logger(__name__).info("Retry worker started", batch_size=100)
        ```
    """
    settings = settings or Settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            *_PRE_CHAIN,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_PRE_CHAIN,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *_renderers(settings.log_format),
            ],
        )
    )

    package_logger = logging.getLogger("hookshot")
    for existing in list(package_logger.handlers):
        if existing.get_name() == HANDLER_NAME:
            package_logger.removeHandler(existing)
    package_logger.addHandler(handler)
    package_logger.setLevel(level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(name)  # type: ignore[no-any-return]


@contextmanager
def delivery_context(**ids: str | None) -> Iterator[None]:
    """Tag every log line inside the block with delivery identifiers.

    None values are left out, so callers can pass optional ids directly.

    Example:
        ```python
        with delivery_context(delivery_id=delivery.id, subscriber_id=subscriber.id):
            logger.info("Attempting delivery")  # carries both ids
        ```
    """
    bound = {key: value for key, value in ids.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield
