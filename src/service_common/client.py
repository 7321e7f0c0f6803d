"""Results of calls to other services.

Downstream services answer with the same envelope this library produces, so
a failed call carries a full ``ErrorResponse``. ``call_service`` returns the
outcome as a value; ``unwrap`` turns a failure into the matching exception::

    async with httpx.AsyncClient(base_url=settings.users_url) as client:
        result = await call_service(client, "GET", f"/users/{user_id}", response_model=User)
        match result:
            case Success(value=user):
                ...
            case Failure(status=404):
                ...
        user = result.unwrap()  # raises ServiceError, ForbiddenError, ...

Transport timeouts and connection failures are not results: they propagate
as httpx exceptions and the error handlers answer 504.
"""

from dataclasses import dataclass
from typing import Any, NoReturn

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from service_common.context import RequestContext
from service_common.exceptions import (
    CommonError,
    ForbiddenError,
    GatewayTimeoutError,
    InternalServerError,
    NotAuthenticatedError,
    ServiceError,
    ServiceUnavailableError,
)
from service_common.logging import get_logger
from service_common.schemas.error import ErrorResponse
from service_common.schemas.response import ResponseWrapper

logger = get_logger(__name__)

EXCEPTIONS_BY_STATUS: dict[int, type[CommonError]] = {
    400: ServiceError,
    401: NotAuthenticatedError,
    403: ForbiddenError,
    500: InternalServerError,
    503: ServiceUnavailableError,
    504: GatewayTimeoutError,
}

_ENVELOPE_KEYS = {"statusCode", "timeStamp", "data", "error"}


@dataclass(frozen=True)
class Success[T]:
    value: T
    status: int = 200

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Failure:
    status: int
    error: ErrorResponse

    def to_exception(self) -> CommonError:
        """The exception for this status; unknown statuses become ``ServiceError``."""
        exc_type = EXCEPTIONS_BY_STATUS.get(self.status, ServiceError)
        wrapper = ResponseWrapper[ErrorResponse](
            status_code=self.status, time_stamp=self.error.timestamp, error=self.error
        )
        return exc_type.from_response(wrapper, self.status)

    def unwrap(self) -> NoReturn:
        raise self.to_exception()


type CallResult[T] = Success[T] | Failure


async def call_service[T](
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    response_model: type[T] | Any = Any,
    **kwargs: Any,
) -> CallResult[T]:
    """Send a request and classify the response.

    2xx: ``Success`` with the envelope's ``data`` (or the bare body) validated
    as ``response_model``. Anything else: ``Failure`` with the decoded error.
    Extra keyword arguments go to ``httpx.AsyncClient.request``.
    """
    response = await client.request(method, url, **kwargs)
    logger.debug("service_called", method=method, url=str(response.request.url), status=response.status_code)

    if response.is_success:
        return Success(value=_decode_data(response, response_model), status=response.status_code)
    return Failure(status=response.status_code, error=decode_error(response))


def decode_error(response: httpx.Response) -> ErrorResponse:
    """The ``ErrorResponse`` in a failed response, or one built from its status."""
    try:
        wrapper = ResponseWrapper[ErrorResponse].model_validate_json(response.content)
    except PydanticValidationError:
        wrapper = None
    if wrapper is not None and wrapper.error is not None:
        return wrapper.error

    request = response.request
    context = RequestContext(path=request.url.path, method=request.method)
    return ErrorResponse.build(response.status_code, response.reason_phrase or None, context=context)


def _decode_data(response: httpx.Response, response_model: Any) -> Any:
    if not response.content:
        return None
    payload = response.json()
    if isinstance(payload, dict) and payload.keys() and payload.keys() <= _ENVELOPE_KEYS:
        payload = payload.get("data")
    return TypeAdapter(response_model).validate_python(payload)
