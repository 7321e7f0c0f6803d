"""FastAPI middleware for request tracing and observability."""

from collections.abc import Awaitable, Callable
from contextlib import nullcontext

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from service_common.context import (
    X_SPAN_ID_HEADER,
    X_TRACE_ID_HEADER,
    RequestContext,
    logging_values,
    reset_request_context,
    set_request_context,
)
from service_common.logging import get_logger
from service_common.tracing import SpanContext, Tracer

logger = get_logger(__name__)


class TraceMiddleware(BaseHTTPMiddleware):
    """Correlate logs and responses of one request.

    - Copies X-Real-Ip / X-User-Id into the structlog context (client_ip, user_id)
    - Opens the tracer's span, or reuses trace_id/span_id already in the context
    - Adds X-Trace-Id / X-Span-Id to the response when the ids exist
    - Removes exactly the context keys it bound, even when downstream raises

    Usage:
        app.add_middleware(TraceMiddleware, tracer=HeaderTracer())  # add last: outermost
    """

    def __init__(self, app: ASGIApp, tracer: Tracer | None = None) -> None:
        super().__init__(app)
        self.tracer = tracer

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        token = set_request_context(RequestContext.from_request(request))
        try:
            with structlog.contextvars.bound_contextvars(**logging_values(request)):
                span_scope = (
                    self.tracer.start_span(request)
                    if self.tracer is not None
                    else nullcontext(SpanContext.from_logging_context())
                )
                with span_scope as span:
                    logger.debug(
                        "request_started",
                        method=request.method,
                        path=request.url.path,
                        traced=span is not None,
                    )
                    response = await call_next(request)
                    _add_trace_headers(response, span)
                    return response
        finally:
            reset_request_context(token)


def _add_trace_headers(response: Response, span: SpanContext | None) -> None:
    if span is None:
        logger.debug("no_active_span")
        return
    if span.trace_id:
        response.headers[X_TRACE_ID_HEADER] = span.trace_id
    if span.span_id:
        response.headers[X_SPAN_ID_HEADER] = span.span_id
