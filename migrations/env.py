"""
migrations/env.py — Alembic environment for the Gatehouse schema.

The database URL is taken from the same config classes the app uses
(gatehouse/config.py), so `alembic upgrade head` and `flask run` always
point at one database:

  TEST_RUN set   → TestingConfig     (TEST_DATABASE_URL)
  otherwise      → $FLASK_ENV config (DATABASE_URL, postgres:// normalised)

SQLite targets run in batch mode because SQLite cannot ALTER constraints
in place.
"""

from __future__ import annotations

import os
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import engine_from_config, pool

_project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_project_root))  # run from a checkout without `pip install -e .`

from gatehouse.config import config_by_name  # noqa: E402  (loads .env)
from gatehouse.extensions import db  # noqa: E402
from gatehouse.models import feature, refresh_token, role, role_feature, user  # noqa: E402,F401

target_metadata = db.metadata


def _database_url() -> str:
    if os.getenv("TEST_RUN"):
        config_class = config_by_name["testing"]
    else:
        config_class = config_by_name.get(os.getenv("FLASK_ENV", "development"), config_by_name["development"])

    url = config_class.SQLALCHEMY_DATABASE_URI
    if not url:
        raise RuntimeError(f"{config_class.__name__} has no database URL; set DATABASE_URL.")
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


db_url = _database_url()
render_as_batch = db_url.startswith("sqlite")

config = context.config
config.set_main_option("sqlalchemy.url", db_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _skip_empty_autogenerate(context_, revision, directives) -> None:
    """`alembic revision --autogenerate` writes nothing when models and schema agree."""
    if getattr(config.cmd_opts, "autogenerate", False) and directives[0].upgrade_ops.is_empty():
        directives[:] = []


def run_migrations_offline() -> None:
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=render_as_batch,
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
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=render_as_batch,
            process_revision_directives=_skip_empty_autogenerate,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
