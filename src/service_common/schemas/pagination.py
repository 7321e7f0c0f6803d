"""Generic pagination types shared by all list endpoints.

PaginationRequest    : client paging/sorting intent, validated by pydantic.
Pageable             : resolved page descriptor (offset, limit, sort) applied to a select.
Paginated[T]         : plain dataclass for service-layer returns (not serializable).
PaginationResponse[T]: Pydantic model for HTTP responses (serializable).
"""

import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Select

DEFAULT_PAGE = 0
DEFAULT_SIZE = 10
MAX_SIZE = 100

# Path/query identifiers: NOT NULL and positive
PositiveId = Annotated[int, Field(gt=0)]


class Direction(StrEnum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def resolve(cls, value: str | None) -> "Direction":
        """Blank or "desc" (any case) sorts descending; anything else ascending."""
        if value is None or not value.strip() or value.strip().lower() == "desc":
            return cls.DESC
        return cls.ASC


@dataclass(frozen=True)
class Sort:
    field: str
    direction: Direction


@dataclass(frozen=True)
class Pageable:
    """One page of a larger result set: (offset, limit, sort)."""

    page: int
    size: int
    sort: Sort | None = None

    @property
    def offset(self) -> int:
        return self.page * self.size

    def apply[S: Select[Any]](self, stmt: S, entity: Any) -> S:
        """Add ORDER BY (when sorted), OFFSET and LIMIT to a select.

        The sort field names an attribute of ``entity``, either as is or in
        its snake_case form (``createdAt`` -> ``created_at``)::

            pageable = request.to_pageable(["createdAt", "name"])
            stmt = pageable.apply(select(User), User)
        """
        if self.sort is not None:
            column = _sort_column(entity, self.sort.field)
            stmt = stmt.order_by(column.desc() if self.sort.direction is Direction.DESC else column.asc())
        return stmt.offset(self.offset).limit(self.size)


class PaginationRequest(BaseModel):
    """Paging and sorting parameters of a list request.

    Bound from query parameters by ``pagination_request``; snake_case keys are
    accepted (``sort_by``) next to camelCase ones (``sortBy``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    page: int | None = Field(default=None, ge=0)
    size: int | None = Field(default=None, ge=1, le=MAX_SIZE)
    sort_by: str | None = Field(default=None, alias="sortBy", pattern=r"^[a-zA-Z]+$")
    direction: str | None = Field(default=None, pattern=r"^(?i:asc|desc)$")

    def to_pageable(self, allowed_sort_fields: Iterable[str] = ()) -> Pageable:
        """Resolve into a page descriptor using an ordered allow-list of sort fields.

        - Empty allow-list: unsorted
        - Blank or unknown ``sort_by``: the first allowed field
        - Blank or "desc" direction: descending, otherwise ascending
        """
        page = self.page if self.page is not None else DEFAULT_PAGE
        size = self.size if self.size is not None else DEFAULT_SIZE
        return Pageable(page=page, size=size, sort=self._resolve_sort(list(allowed_sort_fields)))

    def _resolve_sort(self, allowed: list[str]) -> Sort | None:
        if not allowed:
            return None
        sort_by = (self.sort_by or "").strip()
        field = sort_by if sort_by and sort_by in allowed else allowed[0]
        return Sort(field=field, direction=Direction.resolve(self.direction))


@dataclass
class Paginated[T]:
    """Plain dataclass for paginated results inside the service layer.

    A dataclass instead of a Pydantic model because services shouldn't
    know about serialization; they just pass data up to the router::

        # services/user.py
        async def list_users(db, pageable) -> Paginated[User]:
            return await paginate(db, select(User), pageable, User)

    The router then converts it to the Pydantic version for the response::

        result = await list_users(db, pageable)
        return PaginationResponse[UserResponse].from_page(result, UserResponse.model_validate)
    """

    content: list[T]
    page: int
    size: int
    total_elements: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_elements / self.size) if self.size > 0 else 1

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages


class PaginationResponse[T](BaseModel):
    """Pydantic model for paginated HTTP responses.

    ``{"content": [...], "page", "size", "hasNext", "totalElements", "totalPages"}``
    """

    model_config = ConfigDict(populate_by_name=True)

    content: list[T]
    page: int
    size: int
    has_next: bool = Field(alias="hasNext")
    total_elements: int = Field(alias="totalElements")
    total_pages: int = Field(alias="totalPages")

    @classmethod
    def from_page(
        cls, page: Paginated[Any] | None, mapper: Callable[[Any], T] | None = None
    ) -> "PaginationResponse[T] | None":
        if page is None:
            return None
        content = [mapper(item) for item in page.content] if mapper is not None else list(page.content)
        return cls(
            content=content,
            page=page.page,
            size=page.size,
            has_next=page.has_next,
            total_elements=page.total_elements,
            total_pages=page.total_pages,
        )


def _sort_column(entity: Any, field: str) -> Any:
    column = getattr(entity, field, None)
    if column is None:
        snake = "".join(f"_{char.lower()}" if char.isupper() else char for char in field).lstrip("_")
        column = getattr(entity, snake, None)
    if column is None:
        raise ValueError(f"Unknown sort field '{field}'")
    return column
