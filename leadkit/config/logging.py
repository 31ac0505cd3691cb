"""
Structured logging for the lead service.

Modules log through ``get_logger(__name__)`` with key/value context. The
request middleware binds ``request_id`` for each request; address-like keys
are masked before rendering.
"""

import logging
import sys
from typing import Any

import structlog

from .settings import Settings
from .settings import settings as default_settings

ADDRESS_KEYS = frozenset({"to", "sender", "reply_to", "recipient", "recipients"})
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine")


def redact_email(value: str | None) -> str:
    """Mask the local part of an address for log output."""
    v = (value or "").strip()
    at = v.find("@")
    if at <= 1:
        return "***" if v else ""
    return f"{v[0]}***{v[at:]}"


def _mask_addresses(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in ADDRESS_KEYS & event_dict.keys():
        value = event_dict[key]
        if isinstance(value, list | tuple):
            event_dict[key] = [redact_email(str(v)) for v in value]
        elif isinstance(value, str):
            event_dict[key] = redact_email(value)
    return event_dict


def setup_logging(settings: Settings | None = None) -> None:
    """Configure stdlib logging and structlog for the given settings."""
    settings = settings or default_settings
    level = getattr(logging, settings.log_level)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        _mask_addresses,
    ]
    if settings.debug:
        processors += [
            structlog.processors.CallsiteParameterAdder(
                parameters=[structlog.processors.CallsiteParameter.FUNC_NAME]
            ),
            structlog.dev.ConsoleRenderer(),
        ]
    else:
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def add_request_context(request_id: str, **context: Any) -> None:
    """Start a fresh log context for one request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **context)
