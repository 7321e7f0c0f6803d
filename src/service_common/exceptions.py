"""Application exceptions raised by services and normalized by the error handlers.

Services raise these to signal failures. ``register_error_handlers`` turns
them into the standard envelope:
{"error": {"code": "...", "status": ..., "message": "...", ...}}.
The remote-failure subclasses are built from error bodies returned by other
services (see ``service_common.client``).
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from http import HTTPStatus
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol, Self

from service_common.context import RequestContext, get_request_context
from service_common.messages import resolve_message
from service_common.schemas.error import ValidationError, status_name

if TYPE_CHECKING:
    from service_common.schemas.error import ErrorResponse
    from service_common.schemas.response import ResponseWrapper

_EMPTY_DETAILS: Mapping[str, Any] = MappingProxyType({})


class ErrorCode(Protocol):
    """A known failure category: machine-readable code, HTTP status, message template."""

    @property
    def code(self) -> str: ...

    @property
    def status(self) -> int: ...

    @property
    def message(self) -> str: ...


class BaseErrorCode(Enum):
    """Enum base for service error catalogs.

    Members are ``(status, message_template)`` pairs; the member name is the code::

        class UserErrorCode(BaseErrorCode):
            USER_NOT_FOUND = (404, "User {} not found")

        raise ServiceError.of(UserErrorCode.USER_NOT_FOUND, user_id)
    """

    @property
    def code(self) -> str:
        return self.name

    @property
    def status(self) -> int:
        return int(self.value[0])

    @property
    def message(self) -> str:
        return str(self.value[1])


class CommonError(Exception):
    """Base class for all application failures."""

    def __init__(
        self,
        status: int,
        path: str | None,
        method: str | None,
        message: str | None,
        timestamp: datetime | None,
    ) -> None:
        if status is None:
            raise TypeError("HTTP status must be defined")
        self.status = int(status)
        self.path = path
        self.method = method
        self.message = message
        self.timestamp = timestamp
        super().__init__(message)

    @classmethod
    def from_response(
        cls, wrapper: "ResponseWrapper[ErrorResponse] | None", status: int = 500
    ) -> Self:
        """Rebuild a failure from another service's error envelope.

        ``status`` is used only when the envelope carries none.
        """
        error = wrapper.error if wrapper is not None else None
        if error is None:
            return cls._bare(status)
        return cls._bare(
            error.status or status, error.path, error.method, error.message, error.timestamp
        )

    @classmethod
    def _bare(
        cls,
        status: int,
        path: str | None = None,
        method: str | None = None,
        message: str | None = None,
        timestamp: datetime | None = None,
    ) -> Self:
        exc = cls.__new__(cls)
        CommonError.__init__(exc, status, path, method, message, timestamp)
        return exc

    def __str__(self) -> str:
        return self.message or str(self.status)


class NotAuthenticatedError(CommonError):
    """A downstream service answered 401."""


class ForbiddenError(CommonError):
    """A downstream service answered 403."""


class InternalServerError(CommonError):
    """A downstream service answered 500."""


class ServiceUnavailableError(CommonError):
    """A downstream service answered 503."""


class GatewayTimeoutError(CommonError, TimeoutError):
    """A downstream service answered 504."""


class ServiceError(CommonError):
    """A failure with a machine-readable code, field errors and free-form details."""

    def __init__(
        self,
        code: str | None,
        status: int,
        message: str | None,
        errors: list[ValidationError] | None = None,
        *,
        context: RequestContext | None = None,
    ) -> None:
        context = context or get_request_context()
        super().__init__(status, context.path, context.method, message, datetime.now(UTC))
        self.code = code
        self._errors: list[ValidationError] | tuple[ValidationError, ...] = (
            list(errors) if errors else ()
        )
        self._details: Mapping[str, Any] = _EMPTY_DETAILS

    @classmethod
    def of_status(cls, status: int | HTTPStatus, message: str | None) -> Self:
        http_status = HTTPStatus(status)
        return cls(http_status.name, http_status.value, message)

    @classmethod
    def of(cls, error_code: ErrorCode, *args: object) -> Self:
        message = resolve_message(error_code.message, *args) if args else error_code.message
        return cls(error_code.code, error_code.status, message)

    @classmethod
    def forbidden(cls, message: str | None = None, *args: object) -> Self:
        return cls.of_status(
            HTTPStatus.FORBIDDEN, _message_or_default(message, args, "Operation not permitted!")
        )

    @classmethod
    def unauthorized(cls, message: str | None = None, *args: object) -> Self:
        return cls.of_status(
            HTTPStatus.UNAUTHORIZED, _message_or_default(message, args, "Authentication required!")
        )

    @classmethod
    def bad_request(cls, message: str | None = None, *args: object) -> Self:
        return cls.of_status(HTTPStatus.BAD_REQUEST, _message_or_default(message, args, "Bad request!"))

    @classmethod
    def from_response(
        cls, wrapper: "ResponseWrapper[ErrorResponse] | None", status: int = 500
    ) -> Self:
        exc = super().from_response(wrapper, status)
        error = wrapper.error if wrapper is not None else None
        exc.code = error.code if error is not None else status_name(exc.status)
        exc._errors = list(error.errors) if error is not None and error.errors else ()
        exc._details = dict(error.details) if error is not None and error.details else _EMPTY_DETAILS
        return exc

    @property
    def errors(self) -> list[ValidationError] | tuple[ValidationError, ...]:
        return self._errors

    @property
    def details(self) -> Mapping[str, Any]:
        return self._details

    @property
    def code_as_str(self) -> str | None:
        return self.code.lower() if self.code is not None else None

    def add_error(self, error: ValidationError | str, message: str | None = None) -> None:
        if isinstance(error, str):
            error = ValidationError(property=error, message=message or "")
        if not isinstance(self._errors, list):
            self._errors = list(self._errors)
        self._errors.append(error)

    def add_detail(self, key: str, value: Any) -> None:
        if not isinstance(self._details, dict):
            self._details = dict(self._details)
        self._details[key] = value

    def get_detail(self, name: str) -> Any:
        return self._details.get(name)

    def is_code(self, candidate: "ErrorCode | str | None") -> bool:
        if candidate is None:
            return False
        code = candidate if isinstance(candidate, str) else candidate.code
        return code == self.code

    def format_properties(self) -> str:
        return ", ".join(f"{key}: {value}" for key, value in self._details.items())


def _message_or_default(message: str | None, args: tuple[object, ...], default: str) -> str:
    if message is None:
        return default
    return resolve_message(message, *args) if args else message
