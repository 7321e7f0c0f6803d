"""Optional WHERE-clause builders for list queries.

Each builder returns a SQLAlchemy clause, or ``None`` when its input is
empty, so optional query parameters compose without branching::

    stmt = select(User).where(
        all_of(
            contains(name, User.name),
            in_(roles, User.role),
            date_between(created_from, created_to, User.created_on),
        )
    )

String comparisons are case-insensitive.
"""

from collections.abc import Collection
from datetime import date
from typing import Any

from sqlalchemy import ColumnElement, and_, func, true


def _is_empty(value: str | None) -> bool:
    return value is None or not value.strip()


def equals(value: Any, column: Any) -> ColumnElement[bool] | None:
    if value is None:
        return None
    return column == value


def equals_ignore_case(value: str | None, column: Any) -> ColumnElement[bool] | None:
    if _is_empty(value):
        return None
    return func.lower(column) == value.lower()  # type: ignore[union-attr]


def not_equals(value: Any, column: Any) -> ColumnElement[bool] | None:
    if value is None or (isinstance(value, str) and _is_empty(value)):
        return None
    if isinstance(value, str):
        return func.lower(column) != value.lower()
    return column != value


def contains(value: str | None, column: Any) -> ColumnElement[bool] | None:
    if _is_empty(value):
        return None
    return func.lower(column).like(f"%{value.lower()}%")  # type: ignore[union-attr]


def starts_with(value: str | None, column: Any) -> ColumnElement[bool] | None:
    if _is_empty(value):
        return None
    return func.lower(column).like(f"{value.lower()}%")  # type: ignore[union-attr]


def ends_with(value: str | None, column: Any) -> ColumnElement[bool] | None:
    if _is_empty(value):
        return None
    return func.lower(column).like(f"%{value.lower()}")  # type: ignore[union-attr]


def greater_than(value: Any, column: Any) -> ColumnElement[bool] | None:
    return None if value is None else column > value


def less_than(value: Any, column: Any) -> ColumnElement[bool] | None:
    return None if value is None else column < value


def between(minimum: Any, maximum: Any, column: Any) -> ColumnElement[bool] | None:
    """Inclusive range; a missing bound leaves that side open."""
    if minimum is None and maximum is None:
        return None
    if minimum is not None and maximum is not None:
        return column.between(minimum, maximum)
    if minimum is not None:
        return column >= minimum
    return column <= maximum


def is_true(value: bool | None, column: Any) -> ColumnElement[bool] | None:
    if value is None:
        return None
    return column.is_(True) if value else column.is_(False)


def in_(values: Collection[Any] | None, column: Any) -> ColumnElement[bool] | None:
    if not values:
        return None
    return column.in_(values)


def not_in(values: Collection[Any] | None, column: Any) -> ColumnElement[bool] | None:
    if not values:
        return None
    return column.not_in(values)


def date_after(value: date | None, column: Any) -> ColumnElement[bool] | None:
    """On or after ``value``."""
    return None if value is None else column >= value


def date_before(value: date | None, column: Any) -> ColumnElement[bool] | None:
    """On or before ``value``."""
    return None if value is None else column <= value


def date_between(start: date | None, end: date | None, column: Any) -> ColumnElement[bool] | None:
    return between(start, end, column)


def all_of(*clauses: ColumnElement[bool] | None) -> ColumnElement[bool]:
    """AND of the non-``None`` clauses; ``true()`` when there are none."""
    present = [clause for clause in clauses if clause is not None]
    if not present:
        return true()
    return and_(*present)
