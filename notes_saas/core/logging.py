"""
core/logging.py
---------------
structlog configuration for the notes service.

DEBUG=true  → coloured console lines for local work
DEBUG=false → one JSON object per line for the log pipeline

Auth events are logged with ids and codes only. As a backstop, the
redact_secrets processor masks any event key that names a password, hash
or token before rendering.
"""

import logging
import sys

import structlog

from notes_saas.core.config import settings

REDACTED = "[redacted]"
SECRET_KEY_MARKERS = ("password", "token", "secret", "hash", "authorization", "cookie")


def redact_secrets(logger, method_name, event_dict):
    for key in event_dict:
        if key != "event" and any(marker in key.lower() for marker in SECRET_KEY_MARKERS):
            event_dict[key] = REDACTED
    return event_dict


def configure_logging() -> None:
    level = logging.DEBUG if settings.DEBUG else logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    if not settings.DEBUG:
        for noisy in ("uvicorn.access", "sqlalchemy.engine"):
            logging.getLogger(noisy).setLevel(logging.WARNING)
        # passlib reads the bcrypt backend version and logs noise on newer wheels
        logging.getLogger("passlib").setLevel(logging.ERROR)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.DEBUG:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_request_context(**values) -> None:
    """Attach values (request_id, tenant_id, user_id, ...) to every log line of this request."""
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str = __name__):
    return structlog.get_logger(name)
