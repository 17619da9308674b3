"""
Gestión de sesiones de base de datos destino.
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker
)
from sqlalchemy.orm import declarative_base

from app.core.config import settings


# Base para modelos de SQLAlchemy
Base = declarative_base()


def _create_engine_args(url: str) -> dict:
    """
    Construye los argumentos del engine según el tipo de base de datos.
    PostgreSQL usa pool de conexiones, SQLite no lo soporta.
    """
    args = {
        "echo": settings.DEBUG,
        "future": True,
    }

    # Configuración de pool solo para PostgreSQL
    if "postgresql" in url:
        args.update({
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_pre_ping": True,  # Verifica conexión antes de usar
        })

    return args


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    Habilita SAVEPOINT real en SQLite (pysqlite emite BEGIN de forma implicita
    y rompe begin_nested). Se usa para el aislamiento por registro.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine_for(url: str) -> AsyncEngine:
    """Crea un engine async con la configuración estándar del proyecto."""
    new_engine = create_async_engine(url, **_create_engine_args(url))
    enable_sqlite_savepoints(new_engine)
    return new_engine


# Engine de base de datos
engine = create_engine_for(settings.effective_database_url)

# Session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)


async def init_db() -> None:
    """Inicializa la base de datos creando todas las tablas."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Cierra las conexiones de la base de datos."""
    await engine.dispose()
