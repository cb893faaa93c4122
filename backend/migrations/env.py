"""
Alembic environment for the MAKOEXPRESS schema.

The database URL always comes from application settings (APP_DATABASE_URL),
normalised to an async driver, so migrations and the running API agree on
the target database. Online runs go through an async engine; offline runs
render SQL for review.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from makoexpress.core.config import get_settings
from makoexpress.core.logging import get_logger
from makoexpress.database.base import Base
from makoexpress.database.connection import async_database_url

# Registers every table on Base.metadata
from makoexpress.database.models import (  # noqa: F401
    Driver,
    DriverRating,
    Order,
    OrderStatusHistory,
    Settlement,
    User,
)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = get_logger(__name__)
target_metadata = Base.metadata

# Options shared by offline and online runs
COMPARE_OPTIONS = {
    "target_metadata": target_metadata,
    "compare_type": True,
    "compare_server_default": True,
}


def _database_url() -> str:
    """Resolve the migration target, preferring settings over alembic.ini."""
    settings = get_settings()
    url = settings.database_url or config.get_main_option("sqlalchemy.url")
    if not url:
        raise ValueError("APP_DATABASE_URL must be set to run migrations")
    url = async_database_url(url)
    config.set_main_option("sqlalchemy.url", url)
    return url


def run_migrations_offline() -> None:
    """Emit migration SQL without connecting to the database."""
    url = _database_url()
    logger.info("Rendering offline migrations", driver=url.split("://")[0])

    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, transaction_per_migration=True, **COMPARE_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Apply pending revisions through a throwaway async engine."""
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = _database_url()

    connectable = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    try:
        async with connectable.connect() as connection:
            await connection.run_sync(do_run_migrations)
    except Exception as e:
        logger.error("Migration run failed", error=str(e), error_type=type(e).__name__)
        raise
    finally:
        await connectable.dispose()

    logger.info("Migrations applied", revision_head=context.get_head_revision())


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
