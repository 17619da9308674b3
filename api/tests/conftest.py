"""
Configuración de fixtures para pytest.

Se levantan dos bases SQLite en memoria por test: el destino (Base) y una
base legacy (LegacyBase) con el mismo esquema de tablas que el CRM.
"""
from datetime import datetime
from typing import AsyncGenerator, Callable

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.infrastructure.database  # noqa: F401  registra los modelos en Base
from app.infrastructure.database.models import UserModel
from app.infrastructure.database.session import Base, enable_sqlite_savepoints
from app.infrastructure.legacy import models as legacy_models  # noqa: F401
from app.infrastructure.legacy.repository import LegacyRepository
from app.infrastructure.legacy.session import LegacyBase


# URL de base de datos de prueba
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def _memory_engine():
    """Engine en memoria compartido por todas las sesiones del test (StaticPool)."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
    return engine


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Session factory del destino con tablas creadas."""
    engine = _memory_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Fixture que proporciona una sesión de base de datos para tests.
    Comparte la base en memoria con session_factory.
    """
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def legacy_session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Session factory de la base legacy con el esquema del CRM."""
    engine = _memory_engine()
    async with engine.begin() as conn:
        await conn.run_sync(LegacyBase.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def legacy_repo(legacy_session_factory) -> LegacyRepository:
    return LegacyRepository(legacy_session_factory)


@pytest_asyncio.fixture
async def seed_legacy(legacy_session_factory) -> Callable:
    """Inserta filas en la base legacy: `await seed_legacy(LegacyRequest(...), ...)`."""
    async def _seed(*rows) -> None:
        async with legacy_session_factory() as session:
            session.add_all(rows)
            await session.commit()

    return _seed


@pytest_asyncio.fixture
async def add_user(session_factory) -> Callable:
    """Crea una cuenta activa en el destino y retorna su id."""
    async def _add(email: str, first_name: str = "Test", last_name: str = "User") -> str:
        async with session_factory() as session:
            user = UserModel(
                email=email,
                first_name=first_name,
                last_name=last_name,
                is_active=True,
                created_at=datetime(2024, 1, 1),
            )
            session.add(user)
            await session.commit()
            return user.id

    return _add
