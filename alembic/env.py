"""
Alembic environment for the model registry and queue schema.

Pass `-x db_url=...` to migrate a one-off target; otherwise the URL comes from
`db.config.resolve_migration_database_url`.
"""

from __future__ import annotations

from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import create_engine, pool

from db.base import Base
from db.config import resolve_migration_database_url
from db.models import ModelEntry, QueueMessage, RegistrySetting  # noqa: F401

alembic_config = context.config
if alembic_config.config_file_name is not None:
    fileConfig(alembic_config.config_file_name)

COMPARE_OPTIONS: dict[str, Any] = {
    "target_metadata": Base.metadata,
    "compare_type": True,
    "compare_server_default": True,
}


def migration_url() -> str:
    override = context.get_x_argument(as_dictionary=True).get("db_url")
    return resolve_migration_database_url(
        override=override,
        ini_url=alembic_config.get_main_option("sqlalchemy.url"),
    )


def run_offline(url: str) -> None:
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online(url: str) -> None:
    engine = create_engine(url, poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, **COMPARE_OPTIONS)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline(migration_url())
else:
    run_online(migration_url())
