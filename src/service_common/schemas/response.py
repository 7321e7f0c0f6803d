"""Uniform success/error envelope: {"statusCode", "timeStamp", "data"?, "error"?}."""

from datetime import UTC, datetime
from http import HTTPStatus
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SerializerFunctionWrapHandler, model_serializer

from service_common.schemas.error import ErrorResponse


class ResponseWrapper[T](BaseModel):
    """Envelope carrying exactly one of ``data`` or ``error``.

    Null fields are left out of the serialized form. Use the class-method
    factories rather than the constructor::

        return ResponseWrapper.ok(user)
        return ResponseWrapper.failure(ErrorResponse.build(404, "User not found"))
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status_code: int | None = Field(default=None, alias="statusCode")
    time_stamp: datetime | None = Field(default=None, alias="timeStamp")
    data: T | None = None
    error: T | None = None

    @model_serializer(mode="wrap")
    def _omit_none(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        return {key: value for key, value in handler(self).items() if value is not None}

    @classmethod
    def ok(cls, data: T) -> "ResponseWrapper[T]":
        return cls.wrap(HTTPStatus.OK, data)

    @classmethod
    def wrap(cls, status: int | HTTPStatus, data: T) -> "ResponseWrapper[T]":
        return cls(status_code=int(status), time_stamp=datetime.now(UTC), data=data)

    @classmethod
    def failure(cls, error: ErrorResponse) -> "ResponseWrapper[ErrorResponse]":
        return ResponseWrapper[ErrorResponse](
            status_code=error.status, time_stamp=error.timestamp, error=error
        )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
