"""structlog setup for kubenotify.

One JSON object per line on stderr. Every event carries the emitting
component (``get_logger("app")`` etc.) and the process-wide ``service`` and
``version`` keys bound at startup.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog

# Third-party loggers that go through the stdlib and are noisy at INFO.
_QUIET_LOGGERS = ("kubernetes_asyncio", "httpx", "httpcore", "aiohttp")

_SECRET_KEYS = frozenset({"token", "authorization"})


def _redact_secrets(_logger: Any, _method: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Mask credential-looking keys."""
    for key in event_dict.keys() & _SECRET_KEYS:
        event_dict[key] = "[REDACTED]"
    return event_dict


def setup_logging(level: str = "info", version: str = "") -> None:
    """Configure structlog for JSON lines on stderr at *level*."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(stream=sys.stderr, level=log_level, format="%(message)s")
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service="kubenotify", version=version)


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(component=component)  # type: ignore[return-value]
