# src/cairn/core/logging.py
"""Structured logging configuration for cairn.

cairn modules log through structlog with keyword fields. configure_logging()
routes both structlog and stdlib records through one ProcessorFormatter, so
redis-py and other stdlib loggers render in the same JSON or console format.

Correlation: the transaction coordinator binds txn_scope into
structlog.contextvars for the lifetime of an outermost unit of work, and
merge_contextvars attaches it to every line logged inside it.

Secrets: key material and decrypted plaintext never reach the output.
Fields whose names mark them as secret are replaced before rendering.
"""

import logging
import sys
from typing import IO, Any

import structlog
from structlog.stdlib import ProcessorFormatter

REDACTED = "[REDACTED]"

# Event fields that may only ever be logged masked
SECRET_FIELDS = frozenset({"key", "master_key", "derived_key", "key_material", "plaintext", "secret"})

# Chatty below WARNING even when cairn runs at DEBUG
_NOISY_LOGGERS: tuple[str, ...] = (
    "redis",
    "redis.connection",
    "redis.retry",
    "urllib3",
    "opentelemetry",
    "opentelemetry.sdk",
)


def redact_secrets(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Mask any event field named in SECRET_FIELDS."""
    for name in SECRET_FIELDS.intersection(event_dict):
        event_dict[name] = REDACTED
    return event_dict


def _drop_formatter_bookkeeping(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    # ProcessorFormatter always adds both keys
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _shared_processors() -> list[Any]:
    """Processors applied to structlog and stdlib records alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        redact_secrets,
    ]


def _render_processors(json_output: bool) -> list[Any]:
    if json_output:
        return [
            _drop_formatter_bookkeeping,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [
        _drop_formatter_bookkeeping,
        structlog.dev.ConsoleRenderer(colors=False),
    ]


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: IO[str] | None = None,
) -> None:
    """Configure structlog and stdlib logging for cairn.

    Replaces any handlers already on the root logger.

    Args:
        json_output: One JSON object per line if True, console format otherwise
        level: Root level name (DEBUG, INFO, WARNING, ERROR)
        stream: Output stream, stdout by default
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    shared = _shared_processors()
    structlog.configure(
        processors=[*shared, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Tests reconfigure between cases
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(ProcessorFormatter(processors=_render_processors(json_output), foreign_pre_chain=shared))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Bound logger for a module, typically get_logger(__name__)."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
