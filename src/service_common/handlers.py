"""Request-boundary exception mapping.

``map_exception`` is the single mapping table from a raised exception to an
HTTP status and a ``ResponseWrapper[ErrorResponse]`` body; it never raises.
``register_error_handlers`` installs it on a FastAPI app for every exception
type it knows, plus the catch-all.
"""

from collections.abc import Sequence
from datetime import UTC, datetime
from http import HTTPStatus
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from service_common.context import RequestContext, get_request_context
from service_common.exceptions import CommonError, ServiceError
from service_common.logging import get_logger
from service_common.messages import MessageSource, resolve_locale
from service_common.schemas.error import ErrorResponse, ValidationError
from service_common.schemas.response import ResponseWrapper

logger = get_logger(__name__)

TIMEOUT_MESSAGE = "Service timeout error"
INTERNAL_ERROR_MESSAGE = "Internal Service Error"
INVALID_ARGUMENT_VALUES_MESSAGE = "Invalid argument values"
INVALID_ARGUMENTS_MESSAGE = "Invalid Arguments"

TIMEOUT_ERRORS: tuple[type[BaseException], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    TimeoutError,
    ConnectionError,
)

_PARAMETER_LOCATIONS = {"query", "path", "header", "cookie"}
_REQUEST_LOCATIONS = _PARAMETER_LOCATIONS | {"body"}
_MISSING_TEMPLATES = {
    "query": "Required request parameter '{}' is not present",
    "path": "Required path variable '{}' is not present",
    "header": "Required request header '{}' is not present",
    "cookie": "Required cookie '{}' is not present",
}

ErrorResult = tuple[int, ResponseWrapper[ErrorResponse]]


def map_exception(
    exc: BaseException,
    *,
    context: RequestContext | None = None,
    timestamp: datetime | None = None,
    messages: MessageSource | None = None,
    locale: str | None = None,
) -> ErrorResult:
    """Map an exception raised while handling a request to (status, envelope).

    Most specific first: service error, upstream timeout, application error,
    programmatic validation, missing parameter, request binding, HTTP error,
    anything else. Each branch logs the condition at error level.
    """
    context = context or get_request_context()
    timestamp = timestamp or datetime.now(UTC)
    messages = messages or MessageSource()
    locale = locale or resolve_locale(context.accept_language, messages.default_locale)

    def build(status: int, message: str | None, errors: list[ValidationError] | None = None) -> ErrorResult:
        error = ErrorResponse.build(status, message, errors, context=context, timestamp=timestamp)
        return error.status, ResponseWrapper.failure(error)

    if isinstance(exc, ServiceError):
        logger.error(
            "service_error",
            status=exc.status,
            code=exc.code,
            error=exc.message,
            properties=exc.format_properties(),
        )
        error = ErrorResponse.from_exception(exc)
        return error.status, ResponseWrapper.failure(error)

    if isinstance(exc, TIMEOUT_ERRORS):
        logger.error("service_timeout", status=HTTPStatus.GATEWAY_TIMEOUT.value, error=str(exc))
        return build(HTTPStatus.GATEWAY_TIMEOUT, TIMEOUT_MESSAGE)

    if isinstance(exc, CommonError):
        logger.error("common_error", status=exc.status, error=exc.message)
        return build(exc.status, exc.message)

    if isinstance(exc, PydanticValidationError):
        logger.error("constraint_violation", error=str(exc))
        errors = [
            ValidationError(
                property=_last_segment(issue.get("loc", ()), exc.title),
                message=messages.resolve(str(issue.get("msg", "")), locale),
            )
            for issue in exc.errors(include_url=False)
        ]
        return build(HTTPStatus.BAD_REQUEST, INVALID_ARGUMENT_VALUES_MESSAGE, errors)

    if isinstance(exc, RequestValidationError):
        issues = list(exc.errors())
        missing = _missing_parameter_message(issues)
        if missing is not None:
            logger.error("missing_request_parameter", error=missing)
            return build(HTTPStatus.BAD_REQUEST, missing)

        logger.error("method_argument_not_valid", error=str(exc))
        return build(HTTPStatus.BAD_REQUEST, INVALID_ARGUMENTS_MESSAGE, _binding_errors(issues, messages, locale))

    if isinstance(exc, StarletteHTTPException):
        logger.error("http_error", status=exc.status_code, error=exc.detail)
        message = exc.detail if isinstance(exc.detail, str) else _phrase(exc.status_code)
        return build(exc.status_code, message)

    logger.error(
        "unexpected_error",
        status=HTTPStatus.INTERNAL_SERVER_ERROR.value,
        error=str(exc),
        exc_info=exc,
    )
    return build(HTTPStatus.INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)


def _last_segment(loc: Sequence[Any], default: str) -> str:
    return str(loc[-1]) if loc else default


def _phrase(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return str(status)


def _missing_parameter_message(issues: list[dict[str, Any]]) -> str | None:
    if not issues:
        return None
    parts = []
    for issue in issues:
        loc = tuple(issue.get("loc", ()))
        if issue.get("type") != "missing" or len(loc) < 2 or loc[0] not in _PARAMETER_LOCATIONS:
            return None
        parts.append(_MISSING_TEMPLATES[loc[0]].replace("{}", str(loc[-1])))
    return "; ".join(parts)


def _binding_errors(
    issues: list[dict[str, Any]], messages: MessageSource, locale: str
) -> list[ValidationError]:
    """Field errors first, then errors that concern the whole object."""
    field_errors: list[ValidationError] = []
    global_errors: list[ValidationError] = []
    for issue in issues:
        loc = [str(part) for part in issue.get("loc", ())]
        error_type = str(issue.get("type", ""))
        raw_message = str(issue.get("msg", ""))
        field_path = loc[1:] if loc and loc[0] in _REQUEST_LOCATIONS else loc

        if field_path:
            field = ".".join(field_path)
            message = messages.resolve_first([f"{error_type}.{field}", error_type], raw_message, locale)
            field_errors.append(ValidationError(property=field, message=message))
        else:
            object_name = loc[0] if loc else "request"
            message = messages.resolve_first([f"{error_type}.{object_name}", error_type], raw_message, locale)
            global_errors.append(ValidationError(property=object_name, message=message))
    return field_errors + global_errors


def register_error_handlers(app: FastAPI, messages: MessageSource | None = None) -> None:
    """Attach the shared error handlers to a FastAPI app instance."""
    messages = messages or MessageSource()

    async def handle(request: Request, exc: Exception) -> JSONResponse:
        status, body = map_exception(exc, context=RequestContext.from_request(request), messages=messages)
        headers = exc.headers if isinstance(exc, StarletteHTTPException) else None
        return JSONResponse(status_code=status, content=body.to_json(), headers=headers)

    for exc_type in (
        ServiceError,
        CommonError,
        *TIMEOUT_ERRORS,
        PydanticValidationError,
        RequestValidationError,
        StarletteHTTPException,
        Exception,
    ):
        app.add_exception_handler(exc_type, handle)
