"""
Middleware for request context and logging
"""

import json
import re
import time
from collections.abc import Callable
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .logging import clear_request_context, get_logger, set_request_context

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_OPERATION_RE = re.compile(r"\b(query|mutation|subscription)\s+(\w+)")


def operation_name_from_query(query: str) -> str:
    """Best-effort operation label for logs, without parsing the document."""
    if "__schema" in query or "IntrospectionQuery" in query:
        return "__introspection"
    match = _OPERATION_RE.search(query)
    if match:
        kind = "mutation:" if match.group(1) == "mutation" else ""
        return f"{kind}{match.group(2)}"
    return "unnamed_operation"


async def extract_graphql_operation_name(request: Request) -> str | None:
    if request.url.path != "/graphql":
        return None

    data: dict[str, Any]
    if request.method == "GET":
        data = dict(request.query_params)
    elif request.method == "POST":
        try:
            body = await request.body()
            if not body:
                return None
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        if not isinstance(data, dict):
            return None
    else:
        return None

    op = data.get("operationName")
    if isinstance(op, str) and op:
        return op
    query = data.get("query")
    if not isinstance(query, str) or not query:
        return None
    return operation_name_from_query(query)


class LoggingContextMiddleware(BaseHTTPMiddleware):
    """Bind a request ID (and GraphQL operation name) to every log line of a request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        graphql_operation = await extract_graphql_operation_name(request)
        request_id = set_request_context(
            request_id=request.headers.get(REQUEST_ID_HEADER),
            operation_name=graphql_operation,
        )
        started = time.perf_counter()

        try:
            logger.info(
                "Request started",
                method=request.method,
                path=request.url.path,
                remote_addr=request.client.host if request.client else None,
            )

            response = await call_next(request)

            logger.info(
                "Request completed",
                status_code=response.status_code,
                method=request.method,
                path=request.url.path,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        except Exception as e:
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
            )
            raise

        finally:
            clear_request_context()
