"""Alembic environment configuration (online migrations only)"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from portfolio_tracker.config import settings
from portfolio_tracker.infrastructure.db import models  # noqa: F401  registers tables
from portfolio_tracker.infrastructure.db.database import Base, normalize_sync_url

config = context.config
config.set_main_option("sqlalchemy.url", normalize_sync_url(settings.DATABASE_URL))

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

connectable = engine_from_config(
    config.get_section(config.config_ini_section, {}),
    prefix="sqlalchemy.",
    poolclass=pool.NullPool,
)

with connectable.connect() as connection:
    context.configure(connection=connection, target_metadata=Base.metadata)
    with context.begin_transaction():
        context.run_migrations()
