"""
structlog setup for the gateway, plus the per-request context bound to every log line
"""

import base64
import logging
import secrets
import sys
import time
from contextvars import ContextVar
from typing import Any

import structlog

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
operation_name_ctx: ContextVar[str | None] = ContextVar("operation_name", default=None)

_CONTEXT_FIELDS = (("request_id", request_id_ctx), ("operation_name", operation_name_ctx))


class RequestContextFilter:
    """Copy the current request ID and GraphQL operation name into each event."""

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        _ = logger, method_name
        for key, var in _CONTEXT_FIELDS:
            value = var.get()
            if value:
                event_dict[key] = value
        return event_dict


def _resolve_level(debug: bool, log_level: str | None) -> int:
    if not log_level:
        return logging.DEBUG if debug else logging.INFO
    level = logging.getLevelName(log_level.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(debug: bool = False, log_level: str | None = None) -> None:
    """Route structlog through stdlib logging on stdout.

    Args:
        debug: Render colored console output instead of JSON lines.
        log_level: Level name such as ``"warning"``; when omitted the level
            follows ``debug``.
    """
    logging.basicConfig(
        level=_resolve_level(debug, log_level),
        stream=sys.stdout,
        format="%(message)s",
        force=True,
    )

    renderer = (
        structlog.dev.ConsoleRenderer(colors=True) if debug else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            RequestContextFilter(),
            structlog.processors.TimeStamper(fmt="ISO", utc=True),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def generate_request_id() -> str:
    """Microsecond timestamp plus two random bytes, as 14 urlsafe base64 characters."""
    stamp = int(time.time() * 1_000_000).to_bytes(8, byteorder="big")
    return base64.urlsafe_b64encode(stamp + secrets.token_bytes(2)).decode("ascii").rstrip("=")


def set_request_context(request_id: str | None = None, operation_name: str | None = None) -> str:
    """Bind the request ID (generated when absent) and operation name; return the ID."""
    request_id = request_id or generate_request_id()
    request_id_ctx.set(request_id)
    if operation_name is not None:
        operation_name_ctx.set(operation_name)
    return request_id


def clear_request_context() -> None:
    for _, var in _CONTEXT_FIELDS:
        var.set(None)


def get_request_id() -> str | None:
    return request_id_ctx.get()
