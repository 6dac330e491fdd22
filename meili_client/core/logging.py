"""structlog setup shared by the client and its services."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

# Event keys whose values must never reach a log sink.
_SECRET_KEYS = frozenset({"api_key", "secret", "token", "authorization", "key"})
_REDACTED = "***"


def redact_secrets(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor masking signing secrets, API keys and issued tokens."""
    for name in _SECRET_KEYS.intersection(event_dict):
        if event_dict[name] is not None:
            event_dict[name] = _REDACTED
    return event_dict


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging + structlog JSON logs to stdout.

    Library code only calls `structlog.get_logger`; applications call this once
    (``MeiliClient.from_settings`` does it for them).
    """

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    structlog.configure_once(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            redact_secrets,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
