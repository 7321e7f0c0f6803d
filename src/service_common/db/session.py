from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from service_common.config import Settings, SqlLoggingSettings
from service_common.sql_logging import enable_sql_logging

# Naming conventions for database constraints, so migrations generate
# the same constraint names in every service.
NAMING_CONVENTION: dict[str, str] = {
    "ix": "ix_%(column_0_label)s",  # Index
    "uq": "uq_%(table_name)s_%(column_0_name)s",  # Unique constraint
    "ck": "ck_%(table_name)s_%(constraint_name)s",  # Check constraint
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",  # Foreign key
    "pk": "pk_%(table_name)s",  # Primary key
}


class Base(DeclarativeBase):
    """Base class for service models.

    The naming_convention gives every constraint a predictable name.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def create_engine(
    settings: Settings | None = None,
    sql_settings: SqlLoggingSettings | None = None,
) -> AsyncEngine:
    """Async engine with connection pooling and, when enabled, SQL statement logging."""
    settings = settings or Settings()
    engine = create_async_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,  # Persistent connections
        max_overflow=settings.db_max_overflow,  # Extra connections under load
        pool_timeout=settings.db_pool_timeout,  # Wait time for available connection
        pool_recycle=settings.db_pool_recycle,  # Max connection age
        pool_pre_ping=settings.db_pool_pre_ping,  # Test connection before checkout
        # asyncpg driver options, passed directly to asyncpg.connect()
        connect_args={"command_timeout": settings.db_statement_timeout},
    )
    enable_sql_logging(engine, sql_settings, settings.profiles)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps objects usable after commit without re-querying.
    return async_sessionmaker(engine, expire_on_commit=False)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that provides a database session per request.

    Sessions come from ``app.state.session_factory`` (set by ``install_commons``).
    Commits on success, rolls back on exception. Services and repositories
    never call commit() or rollback() directly.
    """
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
