"""
Structured Logging with Structlog.

Library modules log through ``structlog.get_logger(__name__)``; the host
application calls ``setup_logging()`` once to route those events through the
standard library as JSON or console lines.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from purchasekit.config import settings

# Bound per transaction by the coordinator; often unknown for failed payments
TRANSACTION_CONTEXT_KEYS = ("transaction_identifier", "product_id", "state")


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add library-level context to all log entries."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.version
    return event_dict


def drop_unset_transaction_context(
    logger: Any, method_name: str, event_dict: EventDict
) -> EventDict:
    """Remove transaction fields that were bound as None."""
    for key in TRANSACTION_CONTEXT_KEYS:
        if key in event_dict and event_dict[key] is None:
            del event_dict[key]
    return event_dict


def setup_logging() -> None:
    """
    Configure structured logging with structlog.

    JSON output looks like:
    {
        "event": "transaction_finished",
        "level": "info",
        "timestamp": "2025-01-08T12:00:00.123456Z",
        "logger": "purchasekit.services.coordinator",
        "service": "purchasekit",
        "version": "0.1.0",
        "transaction_identifier": "1000000123",
        "product_id": "pro_upgrade",
        "state": "purchased"
    }
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        drop_unset_transaction_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.log_level.upper() == "DEBUG":
        processors.append(structlog.processors.ExceptionRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class log_context:
    """
    Context manager binding transaction fields to every log entry inside it.

    Nested contexts restore the outer values on exit, so a retry started
    while another transaction is being processed does not clobber it.

    Usage:
        with log_context(transaction_identifier="1000000123"):
            logger.info("transaction_finished")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs
        self.tokens: dict[str, Any] = {}

    def __enter__(self) -> None:
        """Enter context - bind context variables."""
        self.tokens = dict(structlog.contextvars.bind_contextvars(**self.context))

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit context - restore the previous bindings."""
        structlog.contextvars.reset_contextvars(**self.tokens)
        self.tokens = {}
