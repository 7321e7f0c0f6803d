"""Paged queries.

Two fixed queries per call: the total count of the filtered select, then
one page of it with ORDER BY / OFFSET / LIMIT applied.
"""

from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from service_common.schemas.pagination import Pageable, Paginated


async def count(db: AsyncSession, stmt: Select[Any]) -> int:
    """Return the number of rows ``stmt`` would yield, ignoring any ordering."""
    subquery = stmt.order_by(None).subquery()
    result = await db.execute(select(func.count()).select_from(subquery))
    return result.scalar_one()


async def paginate(db: AsyncSession, stmt: Select[Any], pageable: Pageable, entity: Any) -> Paginated[Any]:
    """Fetch one page of ``stmt`` as ORM objects together with the total count."""
    total = await count(db, stmt)
    result = await db.execute(pageable.apply(stmt, entity))
    return Paginated(
        content=list(result.scalars().all()),
        page=pageable.page,
        size=pageable.size,
        total_elements=total,
    )
