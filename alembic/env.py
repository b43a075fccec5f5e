"""Alembic environment for the MyPts schema.

``DATABASE_URL`` (from ``.env``) wins over ``sqlalchemy.url`` in
``alembic.ini``.  The ``profiles`` and ``users`` mirrors belong to the
external directory service and are left out of autogenerate diffs.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

from alembic import context

load_dotenv()

config = context.config

database_url = os.getenv("DATABASE_URL")
if database_url:
    config.set_main_option("sqlalchemy.url", database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from mypts.database.models import Base  # noqa: E402

target_metadata = Base.metadata

EXTERNAL_TABLES = frozenset({"profiles", "users"})


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    """Skip tables owned by the profile/identity services."""
    if type_ == "table" and name in EXTERNAL_TABLES:
        return False
    return True


def _configure_kwargs(url: str | None) -> dict:
    return {
        "target_metadata": target_metadata,
        "include_object": include_object,
        "compare_type": True,
        # SQLite can't ALTER constraints in place
        "render_as_batch": bool(url and url.startswith("sqlite")),
    }


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            **_configure_kwargs(str(connection.engine.url)),
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
