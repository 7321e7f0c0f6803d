from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from service_common.context import RequestContext, reset_request_context, set_request_context
from service_common.exceptions import (
    BaseErrorCode,
    CommonError,
    ForbiddenError,
    GatewayTimeoutError,
    ServiceError,
)
from service_common.schemas.error import ErrorResponse, ValidationError
from service_common.schemas.response import ResponseWrapper


class UserErrorCode(BaseErrorCode):
    USER_NOT_FOUND = (404, "User {} not found")
    EMAIL_TAKEN = (409, "Email is already in use")


def test_common_error_requires_status() -> None:
    with pytest.raises(TypeError):
        CommonError(None, "/users", "GET", "boom", None)  # type: ignore[arg-type]


def test_service_error_takes_path_and_method_from_request_context() -> None:
    token = set_request_context(RequestContext(path="/users/7", method="DELETE"))
    try:
        exc = ServiceError.bad_request()
    finally:
        reset_request_context(token)

    assert exc.path == "/users/7"
    assert exc.method == "DELETE"
    assert exc.timestamp is not None


def test_service_error_outside_request_uses_defaults() -> None:
    exc = ServiceError.of_status(418, "short and stout")
    assert (exc.path, exc.method) == ("/", "GET")
    assert exc.code == "IM_A_TEAPOT"
    assert exc.status == 418


def test_of_resolves_message_template() -> None:
    exc = ServiceError.of(UserErrorCode.USER_NOT_FOUND, 42)

    assert exc.code == "USER_NOT_FOUND"
    assert exc.code_as_str == "user_not_found"
    assert exc.status == 404
    assert exc.message == "User 42 not found"


def test_of_without_args_keeps_template() -> None:
    assert ServiceError.of(UserErrorCode.EMAIL_TAKEN).message == "Email is already in use"


@pytest.mark.parametrize(
    ("factory", "status", "code", "default_message"),
    [
        (ServiceError.forbidden, 403, "FORBIDDEN", "Operation not permitted!"),
        (ServiceError.unauthorized, 401, "UNAUTHORIZED", "Authentication required!"),
        (ServiceError.bad_request, 400, "BAD_REQUEST", "Bad request!"),
    ],
)
def test_convenience_constructors(
    factory: Callable[..., ServiceError], status: int, code: str, default_message: str
) -> None:
    exc = factory()
    assert (exc.status, exc.code, exc.message) == (status, code, default_message)

    exc = factory("Account {} is locked", "farid")
    assert exc.message == "Account farid is locked"


def test_errors_and_details_start_empty_and_immutable() -> None:
    exc = ServiceError.bad_request()

    assert list(exc.errors) == []
    assert dict(exc.details) == {}
    assert isinstance(exc.errors, tuple)
    with pytest.raises(TypeError):
        exc.details["key"] = "value"  # type: ignore[index]


def test_add_error_does_not_touch_the_callers_list() -> None:
    errors = [ValidationError(property="email", message="must be a valid address")]
    exc = ServiceError("INVALID_USER", 400, "Invalid user", errors)

    exc.add_error("age", "must be positive")

    assert len(exc.errors) == 2
    assert errors == [ValidationError(property="email", message="must be a valid address")]


def test_add_error_and_detail_promote_collections() -> None:
    exc = ServiceError.bad_request("Invalid user")
    exc.add_error("email", "must be a valid address")
    exc.add_error(ValidationError(property="age", message="must be positive"))
    exc.add_detail("userId", 7)

    assert exc.errors == [
        ValidationError(property="email", message="must be a valid address"),
        ValidationError(property="age", message="must be positive"),
    ]
    assert exc.details == {"userId": 7}
    assert exc.get_detail("userId") == 7
    assert exc.get_detail("missing") is None
    assert exc.format_properties() == "userId: 7"


def test_is_code() -> None:
    exc = ServiceError.of(UserErrorCode.USER_NOT_FOUND, 1)

    assert exc.is_code(UserErrorCode.USER_NOT_FOUND)
    assert exc.is_code("USER_NOT_FOUND")
    assert not exc.is_code(UserErrorCode.EMAIL_TAKEN)
    assert not exc.is_code(None)


def _error_wrapper() -> ResponseWrapper[ErrorResponse]:
    error = ErrorResponse(
        code="user_not_found",
        status=404,
        method="GET",
        path="/users/1",
        message="User 1 not found",
        timestamp=datetime(2025, 1, 1, tzinfo=UTC),
        errors=[ValidationError(property="id", message="unknown")],
        details={"id": 1},
    )
    return ResponseWrapper.failure(error)


def test_common_error_from_response_copies_fields() -> None:
    exc = ForbiddenError.from_response(_error_wrapper(), 403)

    assert isinstance(exc, ForbiddenError)
    assert exc.status == 404
    assert exc.path == "/users/1"
    assert exc.method == "GET"
    assert exc.message == "User 1 not found"
    assert exc.timestamp == datetime(2025, 1, 1, tzinfo=UTC)
    assert str(exc) == "User 1 not found"


def test_common_error_from_empty_response_uses_fallback_status() -> None:
    exc = GatewayTimeoutError.from_response(None, 504)

    assert exc.status == 504
    assert exc.message is None
    assert isinstance(exc, TimeoutError)


def test_service_error_from_response_copies_code_errors_and_details() -> None:
    exc = ServiceError.from_response(_error_wrapper())

    assert exc.code == "user_not_found"
    assert exc.errors == [ValidationError(property="id", message="unknown")]
    assert exc.details == {"id": 1}

    exc.add_detail("retry", False)
    assert exc.details == {"id": 1, "retry": False}
