#!/usr/bin/env python3
"""
Structured Logging Module using structlog

This module provides structured logging for the caching core with:
- Request ID and user ID correlation (context variables, async-safe)
- Stage labels for execution flow (CACHE.*, LOCK.*, SECKILL.*, ...)
- JSON formatting for log aggregation
- Automatic PII redaction (phone numbers, session tokens)

Architectural Decision: structlog for production logging
- Context-aware logging with automatic field injection
- JSON output for log aggregation
- Context variables follow asyncio tasks, so a rebuild job spawned by a
  request keeps that request's correlation fields
"""

import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

import structlog
from structlog.types import EventDict, WrappedLogger

from shopcache.core.config.settings import get_settings

# Context variables for request correlation
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_ctx: ContextVar[int | None] = ContextVar("log_user_id", default=None)

_PHONE_PATTERN = re.compile(r"(?<!\d)(1\d{2})\d{4}(\d{4})(?!\d)")
_TOKEN_PATTERN = re.compile(r"\b[0-9a-f]{32}\b")
_SENSITIVE_FIELDS = ("phone", "token", "code")


def add_request_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add request ID and user ID to log event from context variables.

    STAGE-L.1: Correlation injection
    """
    request_id = request_id_ctx.get()
    if request_id:
        event_dict["request_id"] = request_id
    user_id = user_id_ctx.get()
    if user_id is not None:
        event_dict.setdefault("user_id", user_id)
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add ISO timestamp to log event.

    STAGE-L.2: Timestamp injection
    """
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return event_dict


def _mask(value: str) -> str:
    value = _PHONE_PATTERN.sub(r"\1****\2", value)
    return _TOKEN_PATTERN.sub("[TOKEN]", value)


def redact_pii(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact PII from log messages and well-known fields.

    STAGE-L.3: PII redaction

    Patterns redacted:
    - Mobile numbers → 138****5678
    - Session tokens (32 hex chars) → [TOKEN]
    - ``code`` fields are dropped to [REDACTED] entirely
    """
    message = event_dict.get("event", "")
    if isinstance(message, str):
        event_dict["event"] = _mask(message)

    for field in _SENSITIVE_FIELDS:
        value = event_dict.get(field)
        if not isinstance(value, str):
            continue
        event_dict[field] = "[REDACTED]" if field == "code" else _mask(value)

    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add log level name to event dict.

    STAGE-L.4: Log level injection
    """
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Setup structured logging with structlog.

    STAGE-L: Logging initialization

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
    """
    settings = get_settings()

    log_level = log_level or settings.logging.LOG_LEVEL
    log_format = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level.upper())
    )

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_request_context,
            add_timestamp,
            structlog.stdlib.add_log_level,
            add_log_level_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_pii,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("message", key="value", stage="CACHE.1")
    """
    return structlog.get_logger(name)


def set_request_id(request_id: str) -> None:
    """Set the correlation ID for the current request."""
    request_id_ctx.set(request_id)


def get_request_id() -> str | None:
    return request_id_ctx.get()


def clear_request_id() -> None:
    request_id_ctx.set(None)


def bind_user_id(user_id: int | None) -> None:
    """Attach the authenticated user to every subsequent log line of this context."""
    user_id_ctx.set(user_id)


def log_stage(
    logger: structlog.stdlib.BoundLogger, stage: str, message: str, level: str = "info", **kwargs
) -> None:
    """
    Log a message with stage information.

    Args:
        logger: Logger instance
        stage: Stage identifier (e.g., "CACHE.2", "SECKILL.3")
        message: Log message
        level: Log level (debug, info, warning, error, critical)
        **kwargs: Additional fields to log

    Usage:
        log_stage(logger, "CACHE.2", "Rebuild lock contended", key="cache:shop:1")
    """
    log_func = getattr(logger, level.lower())
    log_func(message, stage=stage, **kwargs)
