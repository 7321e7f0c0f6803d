"""Trace/span identifiers for the current request.

A ``Tracer`` opens a span per request and owns the ``trace_id``/``span_id``
logging-context keys while it is open. ``HeaderTracer`` continues the caller's
trace from W3C ``traceparent`` or B3 headers, or starts a new one.
"""

import re
import secrets
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from typing import Protocol

import structlog
from starlette.requests import Request

from service_common.context import SPAN_ID, TRACE_ID

TRACEPARENT_HEADER = "traceparent"
B3_TRACE_ID_HEADER = "X-B3-TraceId"
B3_SPAN_ID_HEADER = "X-B3-SpanId"

_TRACEPARENT = re.compile(r"^[0-9a-f]{2}-([0-9a-f]{32})-([0-9a-f]{16})-[0-9a-f]{2}$")
_HEX_ID = re.compile(r"^[0-9a-f]{16}([0-9a-f]{16})?$")


@dataclass(frozen=True)
class SpanContext:
    trace_id: str | None
    span_id: str | None

    @classmethod
    def from_logging_context(cls) -> "SpanContext | None":
        """Read ids that outer instrumentation already bound to the logging context."""
        bound = structlog.contextvars.get_contextvars()
        trace_id, span_id = bound.get(TRACE_ID), bound.get(SPAN_ID)
        if trace_id is None and span_id is None:
            return None
        return cls(trace_id=trace_id, span_id=span_id)


class Tracer(Protocol):
    def start_span(self, request: Request) -> AbstractContextManager[SpanContext | None]:
        """Open the server span for ``request``; the span is current until exit."""
        ...


class HeaderTracer:
    """Minimal tracer propagating W3C and B3 trace ids."""

    def start_span(self, request: Request) -> AbstractContextManager[SpanContext | None]:
        return self._span(request)

    @contextmanager
    def _span(self, request: Request) -> Iterator[SpanContext | None]:
        span = SpanContext(trace_id=self._inbound_trace_id(request) or new_trace_id(), span_id=new_span_id())
        with structlog.contextvars.bound_contextvars(**{TRACE_ID: span.trace_id, SPAN_ID: span.span_id}):
            yield span

    @staticmethod
    def _inbound_trace_id(request: Request) -> str | None:
        traceparent = request.headers.get(TRACEPARENT_HEADER, "").strip().lower()
        match = _TRACEPARENT.match(traceparent)
        if match and set(match.group(1)) != {"0"}:
            return match.group(1)

        b3_trace_id = request.headers.get(B3_TRACE_ID_HEADER, "").strip().lower()
        if _HEX_ID.match(b3_trace_id):
            return b3_trace_id
        return None


def new_trace_id() -> str:
    return secrets.token_hex(16)


def new_span_id() -> str:
    return secrets.token_hex(8)
