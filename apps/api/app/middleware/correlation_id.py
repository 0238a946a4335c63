from __future__ import annotations

import uuid

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.context import bind_correlation_id
from app.core.context import RequestContext


MAX_CORRELATION_ID_LENGTH = 128


def incoming_correlation_id(request: Request) -> str | None:
    """Returns the caller's correlation id, or None when it is missing or unusable."""

    value = (request.headers.get("x-correlation-id") or "").strip()
    if not value or len(value) > MAX_CORRELATION_ID_LENGTH or not value.isprintable():
        return None
    return value


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Opens the request context: correlation id, contextvar, span tag and response headers."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = incoming_correlation_id(request) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        request.state.context = RequestContext(request_id=correlation_id, correlation_id=correlation_id)

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("correlation_id", correlation_id)

        with bind_correlation_id(correlation_id):
            response = await call_next(request)

        response.headers["x-correlation-id"] = correlation_id
        response.headers["x-request-id"] = request.state.context.request_id
        return response
