"""
Database base configuration and utilities.
"""
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import MetaData
from app.core.config import settings

# Naming convention for constraints
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}

metadata = MetaData(naming_convention=convention)


class Base(DeclarativeBase):
    """Base class for all database models."""
    metadata = metadata


def engine_options(database_url: str) -> dict:
    """Engine keyword arguments for the configured backend."""
    options = {
        "echo": settings.DEBUG and settings.APP_ENV == "development",
        "future": True,
    }
    if database_url.startswith("sqlite"):
        # SQLite serialises writers on its database lock; wait for it instead of failing fast
        options["connect_args"] = {"timeout": settings.SQLITE_BUSY_TIMEOUT}
    else:
        options["isolation_level"] = settings.DB_ISOLATION_LEVEL
    return options


# Create async engine
engine = create_async_engine(
    settings.DATABASE_URL,
    **engine_options(settings.DATABASE_URL)
)

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_db() -> AsyncSession:
    """Dependency that provides a database session."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_session_maker() -> async_sessionmaker:
    """Dependency that provides the session factory used for retryable transactions."""
    return async_session_maker


async def init_db() -> None:
    """Initialize database tables."""
    # Register every model on the metadata before create_all
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
