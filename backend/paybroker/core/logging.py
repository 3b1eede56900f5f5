"""structlog setup for the checkout broker.

Every record, ours or a library's, goes through one stdlib handler: JSON
lines in production, colored console output when debugging. Gateway
secrets are masked before rendering and the request's correlation id is
attached when there is one.
"""

import logging
import logging.config

import structlog
from asgi_correlation_id.context import correlation_id

from paybroker.domain.providers import SECRET_CREDENTIAL_FIELDS

REDACTED = "***"

SENSITIVE_KEYS = frozenset(
    {field for fields in SECRET_CREDENTIAL_FIELDS.values() for field in fields}
    | {"authorization", "signature", "credentials", "password"}
)

# Chatty at INFO; their failures still surface through our own events
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "stripe", "aiosqlite")


def add_correlation_id(logger, method, event_dict):
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def redact_secrets(logger, method, event_dict):
    """Mask credential values, including one level down in dict values."""
    for key, value in event_dict.items():
        if key in SENSITIVE_KEYS and value:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {k: REDACTED if k in SENSITIVE_KEYS and v else v for k, v in value.items()}
    return event_dict


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Install the processor chain and the stdlib handler.

    Must run before anything calls ``structlog.get_logger`` with caching on.
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

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
                "foreign_pre_chain": shared_processors,
            },
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "structured",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": ["stdout"], "level": log_level},
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
    })

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
