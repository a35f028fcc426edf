"""
Alembic environment para tokens + historial de volúmenes.

Conexión síncrona con DATABASE_SYNC_URL (psycopg2): la aplicación usa asyncpg,
Alembic no. Ejecutar desde apps/api:

    alembic upgrade head
"""

import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

# apps/api en el path para importar core y models sin instalar el paquete
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import settings  # noqa: E402
from models.base import Base  # noqa: E402

# Registra Token, TopVolumeHistory y TradingVolumeHistory en Base.metadata
import models  # noqa: F401, E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata
config.set_main_option("sqlalchemy.url", settings.DATABASE_SYNC_URL)


def _configure_options() -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "compare_server_default": True,
        # SQLite (tests/desarrollo) no soporta ALTER TABLE completo
        "render_as_batch": settings.DATABASE_SYNC_URL.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Emite el SQL sin conexión (revisión manual antes de aplicar en producción)."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(),
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
        context.configure(connection=connection, **_configure_options())
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
