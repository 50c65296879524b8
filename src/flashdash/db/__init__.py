"""FlashDash Database module.

Database models and migrations:
- SQLAlchemy 2.x ORM models
- Alembic migration configuration
- Migration URL resolution (sync psycopg driver)
- Async engine and session factory (psycopg for PostgreSQL, aiosqlite for SQLite)
"""

from __future__ import annotations

import os
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from flashdash.core.config import DatabaseSettings


def to_async_url(url: str) -> str:
    """Rewrite a database URL so it uses an async driver.

    Args:
        url: postgresql:// or sqlite:// URL as configured.

    Returns:
        URL using psycopg (PostgreSQL) or aiosqlite (SQLite).
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def to_sync_url(url: str) -> str:
    """Rewrite a database URL for the synchronous drivers Alembic runs on."""
    if url.startswith(("postgresql://", "postgres://")):
        return "postgresql+psycopg://" + url.split("://", 1)[1]
    if url.startswith("sqlite+aiosqlite://"):
        return url.replace("sqlite+aiosqlite://", "sqlite://", 1)
    return url


def migration_url(fallback: str | None = None) -> str:
    """Resolve the database URL migrations run against.

    Lookup order:
    1. FLASHDASH_DATABASE__URL, validated like the service does
    2. DATABASE_URL
    3. ``fallback`` (sqlalchemy.url from alembic.ini)

    Args:
        fallback: URL used when neither environment variable is set.

    Returns:
        URL using a synchronous driver.

    Raises:
        pydantic.ValidationError: If FLASHDASH_DATABASE__URL has an unsupported scheme.
        ValueError: If no URL is configured anywhere.
    """
    if os.environ.get("FLASHDASH_DATABASE__URL"):
        url = DatabaseSettings().url
    else:
        url = os.environ.get("DATABASE_URL") or fallback or ""
    if not url:
        msg = "No database URL configured for migrations"
        raise ValueError(msg)
    return to_sync_url(url)


def _enable_sqlite_locking(engine: AsyncEngine) -> None:
    """Make SQLite transactions take the write lock up front.

    pysqlite's implicit transaction handling is disabled and every
    transaction is opened with BEGIN IMMEDIATE, so two writers on the same
    file are serialized and a transaction never reads a row another writer
    is about to change.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, _connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_from_settings(database: DatabaseSettings) -> AsyncEngine:
    """Build an async engine for the configured store.

    Args:
        database: Database settings.

    Returns:
        AsyncEngine ready for use by a session factory.
    """
    url = to_async_url(database.url)

    if database.is_sqlite:
        engine = create_async_engine(url, echo=database.echo)
        _enable_sqlite_locking(engine)
        return engine

    return create_async_engine(
        url,
        pool_size=database.pool_size,
        max_overflow=database.max_overflow,
        pool_timeout=database.pool_timeout,
        pool_pre_ping=True,
        echo=database.echo,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory used throughout the service."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
