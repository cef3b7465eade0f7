"""Alembic migration environment for the formbridge schema.

Migrations run online against the application's own engine, so the
database URL always comes from settings.
"""
from logging.config import fileConfig

from alembic import context

import formbridge.db.models  # noqa: F401  (registers tables on Base.metadata)
from formbridge.db.base import Base
from formbridge.db.session import engine

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def run_migrations() -> None:
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=Base.metadata,
            # SQLite cannot ALTER columns in place
            render_as_batch=connection.dialect.name == "sqlite",
            compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    raise SystemExit("Offline (--sql) migrations are not supported; run against a database.")
run_migrations()
