"""Structured logging configuration with stdlib bridge.

Configures structlog with:
- JSON output for production
- ConsoleRenderer for dev mode (human-readable, colored)
- Stdlib bridge so uvicorn, SQLAlchemy, httpx and stripe logs share the same format
- Correlation ID injection from asgi-correlation-id context var
- Credential redaction: vault values, API keys and Stripe secrets never reach the output
"""

import logging
import logging.config
import re

import structlog
from asgi_correlation_id.context import correlation_id

REDACTED = "[REDACTED]"

# Event keys whose values are credentials whatever their content
SECRET_FIELDS = frozenset({
    "value",
    "secret_key",
    "api_key",
    "authorization",
    "stripe_signature",
    "webhook_secret",
})

# Stripe secret/restricted keys and webhook signing secrets embedded in free text
SECRET_PATTERN = re.compile(r"\b(?:sk|rk)_(?:live|test)_[0-9A-Za-z]+|\bwhsec_[0-9A-Za-z]+")


def add_correlation_id(logger, method, event_dict):
    """Inject correlation_id from asgi-correlation-id context into every log entry."""
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def redact_secrets(logger, method, event_dict):
    """Mask credential fields and any Stripe key found inside string values.

    Runs for structlog calls and, via ``foreign_pre_chain``, for stdlib records,
    where the formatted message arrives as ``event``.
    """
    for key, val in event_dict.items():
        if key in SECRET_FIELDS and val is not None:
            event_dict[key] = REDACTED
        elif isinstance(val, str):
            event_dict[key] = SECRET_PATTERN.sub(REDACTED, val)
    return event_dict


def shared_processors() -> list:
    """Processor chain shared by structlog loggers and the stdlib bridge."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structlog and route stdlib logging through the same renderer.

    Must run before any module calls ``structlog.get_logger`` for the first
    time, because the processor chain is cached on first use.

    Args:
        log_level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
        json_logs: True for JSON output (production), False for ConsoleRenderer (dev)
    """
    processors = shared_processors()

    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    renderer,
                ],
                "foreign_pre_chain": processors,
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "structured",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": ["default"], "level": log_level},
        "loggers": {
            "uvicorn.access": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "WARNING"},
            # The SDK logs request bodies at debug level
            "stripe": {"level": "WARNING"},
        },
    })

    structlog.configure(
        processors=processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
