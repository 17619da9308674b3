"""
Conexión a la base de datos legacy (solo lectura).

El engine se crea de forma perezosa: si LEGACY_DATABASE_URL no está
configurada la migración queda deshabilitada y el repositorio legacy
reporta "no disponible".
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import settings


# Base separada: estos modelos nunca se crean ni se escriben desde aquí
LegacyBase = declarative_base()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def get_legacy_session_factory() -> Optional[async_sessionmaker]:
    """
    Retorna la session factory legacy, creandola en el primer uso.

    Returns:
        async_sessionmaker o None si no hay URL configurada
    """
    global _engine, _session_factory

    if _session_factory is not None:
        return _session_factory
    if not settings.LEGACY_DATABASE_URL:
        return None

    _engine = create_async_engine(
        settings.LEGACY_DATABASE_URL,
        echo=settings.DEBUG,
        pool_size=settings.LEGACY_DB_POOL_SIZE,
        pool_pre_ping=True,
        pool_recycle=3600,
    )
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)
    return _session_factory


async def close_legacy_db() -> None:
    """Cierra el pool de conexiones legacy si fue creado."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
