"""
Structured logging for RecordLens.

structlog renders every event, through rich in a terminal or as JSON lines
with ``--json-logs``. The correlation id is bound in structlog's context
variables so it rides along on each event without a custom processor.
Encryption keys, tokens and decrypted plaintext are masked if they ever
reach a logger.
"""

import logging
import sys
import uuid
from typing import Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

REDACTED = "***"
_SECRET_KEYS = frozenset({"encryption_key", "token", "authorization", "plaintext", "secret"})


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind a correlation id (a fresh 8-character one if none is given)."""
    correlation_id = correlation_id or uuid.uuid4().hex[:8]
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
    return correlation_id


def get_correlation_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get("correlation_id")


def redact_secrets(logger, method_name, event_dict):
    for key in _SECRET_KEYS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


def setup_logging(debug: bool = False, rich_output: bool = True) -> None:
    """
    Configure structlog, plus the standard library loggers httpx writes to.

    Args:
        debug: Emit debug events; also lets httpx's per-request logs through
        rich_output: Rich console rendering instead of JSON lines
    """
    level = logging.DEBUG if debug else logging.INFO

    if rich_output:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.rich_traceback,
        )
        handler = RichHandler(console=Console(stderr=True), show_path=False)
    else:
        renderer = structlog.processors.JSONRenderer()
        handler = logging.StreamHandler(sys.stderr)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_secrets,
            structlog.dev.set_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # httpx logs each request at INFO; keep that out of normal runs
    logging.basicConfig(
        level=level if debug else logging.WARNING,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )
