"""Request-scoped context shared by the middleware, exceptions and error handlers.

The trace middleware stores one ``RequestContext`` per request in a
``ContextVar``; anything that needs the current path or method outside an
endpoint signature reads it from here. Outside a request the defaults apply
(path ``/``, method ``GET``).
"""

from contextvars import ContextVar, Token
from dataclasses import dataclass

from starlette.requests import Request

X_REAL_IP_HEADER = "X-Real-Ip"
X_USER_ID_HEADER = "X-User-Id"
X_TRACE_ID_HEADER = "X-Trace-Id"
X_SPAN_ID_HEADER = "X-Span-Id"

# Logging-context keys owned by the trace middleware
CLIENT_IP = "client_ip"
USER_ID = "user_id"
# Logging-context keys owned by the tracer
TRACE_ID = "trace_id"
SPAN_ID = "span_id"

REQUEST_HEADERS_TO_CONTEXT: dict[str, str] = {
    X_REAL_IP_HEADER: CLIENT_IP,
    X_USER_ID_HEADER: USER_ID,
}


@dataclass(frozen=True)
class RequestContext:
    path: str = "/"
    method: str = "GET"
    client_ip: str | None = None
    user_id: str | None = None
    accept_language: str | None = None

    @classmethod
    def from_request(cls, request: Request) -> "RequestContext":
        real_ip = request.headers.get(X_REAL_IP_HEADER) or None
        return cls(
            path=request.url.path,
            method=request.method,
            client_ip=real_ip or (request.client.host if request.client else None),
            user_id=request.headers.get(X_USER_ID_HEADER) or None,
            accept_language=request.headers.get("Accept-Language"),
        )


_request_context: ContextVar[RequestContext | None] = ContextVar("request_context", default=None)


def get_request_context() -> RequestContext:
    return _request_context.get() or RequestContext()


def set_request_context(context: RequestContext) -> Token[RequestContext | None]:
    return _request_context.set(context)


def reset_request_context(token: Token[RequestContext | None]) -> None:
    _request_context.reset(token)


def logging_values(request: Request) -> dict[str, str]:
    """Header values to copy into the logging context, keyed by context key."""
    values: dict[str, str] = {}
    for header, key in REQUEST_HEADERS_TO_CONTEXT.items():
        value = request.headers.get(header)
        if value:
            values[key] = value
    return values
