"""
Async engine and session management.

One engine per process, created lazily from settings. Request handlers get a
session through ``get_db``, which commits when the handler returns and rolls
back when it raises. Lifecycle services commit their own guarded updates, so
the final commit there is usually a no-op.
"""

import asyncio
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from makoexpress.core.config import get_settings
from makoexpress.core.logging import get_logger

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def async_database_url(url: str) -> str:
    """``postgresql://`` URLs are served through asyncpg; others pass through."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _engine_options(url: str) -> dict[str, Any]:
    settings = get_settings()
    if url.startswith("sqlite"):
        # SQLite serialises writers; give a blocked accept time to wait its turn
        return {"poolclass": NullPool, "connect_args": {"timeout": 15}}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "connect_args": {
            "server_settings": {"application_name": settings.app_name},
            "command_timeout": 60,
            "timeout": 10,
        },
    }


def get_engine() -> AsyncEngine:
    global _engine

    if _engine is None:
        settings = get_settings()
        url = async_database_url(settings.database_url)
        _engine = create_async_engine(url, echo=settings.debug, **_engine_options(url))
        logger.info("Database engine created", driver=url.split("://")[0], environment=settings.environment)

    return _engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded attributes after commit so results can be serialised."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory

    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a request-scoped session.

    Example:
        @router.get("/orders/{order_id}")
        async def get_order(order_id: UUID, db: AsyncSession = Depends(get_db)):
            ...
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.warning("Request session rolled back", error_type=type(e).__name__)
            raise


async def check_database_health(max_retries: int = 3, retry_delay: float = 1.0) -> bool:
    """Run ``SELECT 1`` with exponential backoff between attempts."""
    for attempt in range(1, max_retries + 1):
        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (OperationalError, DBAPIError) as e:
            logger.warning(
                "Database health check failed",
                attempt=attempt,
                max_retries=max_retries,
                error=str(e),
            )
            if attempt < max_retries:
                await asyncio.sleep(retry_delay * 2 ** (attempt - 1))

    return False


async def close_database_connections() -> None:
    global _engine, _session_factory

    if _engine is not None:
        try:
            await _engine.dispose()
            logger.info("Database engine disposed")
        finally:
            _engine = None
            _session_factory = None
