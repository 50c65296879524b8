"""Alembic environment for the FlashDash store.

Migrations target PostgreSQL through the synchronous psycopg driver. The
URL is resolved by flashdash.db.migration_url(), so the API and its schema
read the same FLASHDASH_DATABASE__URL setting. SQLite files are migrated in
batch mode for local development.
"""

from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import create_engine, pool

from flashdash.db import migration_url

# Registers the users, rider_details, addresses and deliveries tables
from flashdash.db.models import Base

config = context.config

if config.config_file_name is not None:
    # Keep the flashdash.* loggers created during the imports above
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def _configure(**options: Any) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        **options,
    )


def run_migrations_offline() -> None:
    """Print the migration SQL instead of applying it."""
    _configure(
        url=migration_url(config.get_main_option("sqlalchemy.url")),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a single unpooled connection."""
    engine = create_engine(
        migration_url(config.get_main_option("sqlalchemy.url")),
        poolclass=pool.NullPool,
    )

    try:
        with engine.connect() as connection:
            _configure(
                connection=connection,
                render_as_batch=connection.dialect.name == "sqlite",
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
