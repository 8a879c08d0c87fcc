from __future__ import annotations

import logging
from logging.config import fileConfig

from alembic import context

from lifeline.config import settings
from lifeline.infrastructure.db.engine import get_engine
from lifeline.infrastructure.db.models_sqlalchemy import Base

config = context.config
logger = logging.getLogger("lifeline.migrations")

# startup.run_migrations passes the URL explicitly; bare `alembic` runs fall back to settings.
database_url = config.get_main_option("sqlalchemy.url") or settings.database_url

if config.config_file_name:
    try:
        fileConfig(config.config_file_name)
    except KeyError:
        logger.warning("Alembic config has no logging sections, keeping application logging")

# Batch mode lets SQLite rebuild the emergencies table for column changes.
MIGRATION_OPTIONS = {
    "target_metadata": Base.metadata,
    "render_as_batch": True,
    "compare_type": True,
}


def run_migrations_offline() -> None:
    context.configure(
        url=database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **MIGRATION_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = get_engine(database_url)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, **MIGRATION_OPTIONS)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()
    logger.info("Schema migrated to head")


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
