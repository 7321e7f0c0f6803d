"""Error response schemas.

Every error leaves a service in the same shape:
{"code", "status", "method", "path", "message", "timestamp", "errors"?, "details"?}.
Empty ``errors``/``details`` are dropped from the serialized body. Exception
handlers wrap it in ``ResponseWrapper`` before it goes on the wire.
"""

from datetime import UTC, datetime
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, SerializerFunctionWrapHandler, model_serializer

from service_common.context import RequestContext, get_request_context

if TYPE_CHECKING:
    from service_common.exceptions import ServiceError


def status_name(status: int | HTTPStatus) -> str:
    """Canonical name of an HTTP status (``NOT_FOUND``); the number itself when non-standard."""
    try:
        return HTTPStatus(status).name
    except ValueError:
        return str(int(status))


class ValidationError(BaseModel):
    """One field-level (or object-level) validation failure."""

    model_config = ConfigDict(frozen=True)

    property: str
    message: str


class ErrorResponse(BaseModel):
    """Wire representation of a failure, built once at the request boundary."""

    model_config = ConfigDict(frozen=True)

    code: str | None = None
    status: int
    method: str | None = None
    path: str | None = None
    message: str | None = None
    timestamp: datetime | None = None
    errors: list[ValidationError] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)

    @model_serializer(mode="wrap")
    def _omit_empty_collections(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        for key in ("errors", "details"):
            if not data.get(key):
                data.pop(key, None)
        return data

    @classmethod
    def from_exception(cls, exc: "ServiceError") -> "ErrorResponse":
        """Copy every field of a service error; the code goes out lower-cased."""
        return cls(
            code=exc.code_as_str,
            status=exc.status,
            method=exc.method,
            path=exc.path,
            message=exc.message,
            timestamp=exc.timestamp,
            errors=list(exc.errors),
            details=dict(exc.details),
        )

    @classmethod
    def build(
        cls,
        status: int | HTTPStatus,
        message: str | None,
        errors: list[ValidationError] | None = None,
        details: dict[str, Any] | None = None,
        *,
        context: RequestContext | None = None,
        timestamp: datetime | None = None,
    ) -> "ErrorResponse":
        """Build from a status and message; path and method come from the request context.

        ``errors``/``details`` passed as ``None`` become empty collections.
        """
        context = context or get_request_context()
        return cls(
            code=status_name(status).lower(),
            status=int(status),
            method=context.method,
            path=context.path,
            message=message,
            timestamp=timestamp or datetime.now(UTC),
            errors=list(errors or []),
            details=dict(details or {}),
        )
