# migrations/env.py
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

import auth_service.models  # noqa: F401  registers every table
from auth_service.core.config import get_settings
from auth_service.db.base import Base

config = context.config

# only the alembic CLI configures logging; inside the app structlog owns it
if config.cmd_opts is not None and config.config_file_name:
    fileConfig(config.config_file_name)

# (1) CLI runs take the URL from settings (.env / DATABASE_URL);
#     run_migrations() has already set it explicitly
if config.cmd_opts is not None:
    config.set_main_option("sqlalchemy.url", get_settings().DATABASE_URL)

target_metadata = Base.metadata


def run_migrations_offline():
    url = config.get_main_option("sqlalchemy.url")
    context.configure(url=url, target_metadata=target_metadata, literal_binds=True, render_as_batch=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config(
        config.get_section(config.config_ini_section), prefix="sqlalchemy.", poolclass=pool.NullPool
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
