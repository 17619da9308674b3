"""
Entorno de Alembic para la base de datos destino.

- La URL sale de settings (DATABASE_URL o componentes DATABASE_*).
- Los drivers async se cambian por su equivalente sync: asyncpg -> psycopg,
  aiosqlite -> pysqlite.
- Solo se versionan las tablas del destino; los modelos legacy usan otra
  metadata (LegacyBase) y esa base nunca se escribe.
"""
import sys
from pathlib import Path
from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

API_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(API_DIR))

from app.core.config import settings
from app.infrastructure.database.session import Base
import app.infrastructure.database  # noqa: F401  registra los modelos en Base

_SYNC_DRIVERS = {
    "+asyncpg": "+psycopg",
    "+aiosqlite": "",
}


def _sync_url(url: str) -> str:
    for async_driver, sync_driver in _SYNC_DRIVERS.items():
        url = url.replace(async_driver, sync_driver)
    return url


config = context.config
config.set_main_option("sqlalchemy.url", _sync_url(settings.effective_database_url))

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _include_object(obj, name, type_, reflected, compare_to):
    """Ignora tablas de la base que no pertenecen a los modelos del destino."""
    if type_ == "table" and reflected and compare_to is None:
        return False
    return True


def run_migrations_offline() -> None:
    """Genera el SQL sin conectarse (útil para revisar antes de aplicar)."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_object=_include_object,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Conecta a la base destino y aplica las migraciones."""
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
            include_object=_include_object,
            # SQLite no soporta ALTER TABLE completo
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
