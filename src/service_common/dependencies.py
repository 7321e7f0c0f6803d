"""Shared FastAPI dependencies.

Reusable type aliases and dependency functions that service routers import::

    @router.get("/users")
    async def list_users(db: DB, pagination: Pagination) -> PaginationResponse[UserResponse]:
        pageable = pagination.to_pageable(["createdAt", "name"])
        ...
"""

import re
from typing import Annotated

from fastapi import Depends, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from service_common.db.session import get_db
from service_common.schemas.pagination import PaginationRequest

_SNAKE_SEGMENT = re.compile(r"_([a-zA-Z0-9])")


def to_camel(name: str) -> str:
    """``sort_by`` -> ``sortBy``; names without underscores are returned as is."""
    return _SNAKE_SEGMENT.sub(lambda match: match.group(1).upper(), name)


def pagination_request(request: Request) -> PaginationRequest:
    """Bind ``page``, ``size``, ``sortBy``/``sort_by`` and ``direction`` from the query string.

    Blank values count as absent. Constraint violations are raised as a
    ``RequestValidationError`` located in ``query``, like any other bad
    query parameter.
    """
    params = {
        to_camel(key): value
        for key, value in request.query_params.items()
        if value.strip()
    }
    try:
        return PaginationRequest.model_validate(params)
    except ValidationError as exc:
        errors = [
            {**error, "loc": ("query", *error["loc"])}
            for error in exc.errors(include_url=False)
        ]
        raise RequestValidationError(errors) from exc


DB = Annotated[AsyncSession, Depends(get_db)]
Pagination = Annotated[PaginationRequest, Depends(pagination_request)]
