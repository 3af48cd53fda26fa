"""
Storefront Backend — Database Session Management
==================================================

What:  Async SQLAlchemy engine, session factory, declarative base, and the
       per-request session dependency.
Why:   Users, refresh tokens, reset tokens, and payments all live in one
       relational store; every service receives its session from here.
How:   One pooled async engine per process. `get_db_session` commits when the
       request handler returns and rolls back when it raises.
When:  Engine is created at import; sessions are created per request.

Connection Pooling:
    pool_size / max_overflow come from settings (20 + 10 by default).
    pool_recycle=3600 drops connections older than an hour.
    SQLite URLs (used by the test suite) get NullPool: a fresh connection per
    session, so no connection outlives the event loop that opened it.
"""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from storefront.config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if url.startswith("sqlite"):
        options["poolclass"] = NullPool
    else:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# expire_on_commit=False: services return ORM objects after the commit in
# get_db_session; without it every attribute access would trigger a reload.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base shared by every ORM model (and Alembic's metadata)."""
    pass


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    Commits after the handler returns, rolls back and re-raises if it fails,
    and always returns the connection to the pool.

    Example:
        @router.get("/auth/profile")
        async def profile(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def dispose_engine() -> None:
    """Close every pooled connection. Called from the application lifespan on shutdown."""
    await engine.dispose()
