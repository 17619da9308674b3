"""
Tests unitarios para IdentityMapper.

Verifica el match por email sin distinguir mayusculas, la cadena
manager -> cliente -> cuenta y el manejo de la cuenta de sistema.
"""
import pytest
from sqlalchemy import func, select

from app.application.services.identity_mapper import IdentityMap, IdentityMapper
from app.infrastructure.database.models import UserModel
from app.infrastructure.legacy.models import LegacyCustomer, LegacyManager


SYSTEM_EMAIL = "legacy-system@test.local"


@pytest.fixture
def mapper(legacy_repo):
    return IdentityMapper(legacy_repo, system_email=SYSTEM_EMAIL)


async def _seed_employees(seed_legacy):
    await seed_legacy(
        LegacyCustomer(id=10, first_name="Ana", email="Ana@Example.com", is_manager=1),
        LegacyCustomer(id=11, first_name="Bruno", email="bruno@nowhere.com", is_manager=1),
        LegacyCustomer(id=12, first_name="Carla", email=None, is_manager=1),
        LegacyManager(id=1, user_id=10, alias="ana"),
        LegacyManager(id=2, user_id=11, alias="bruno"),
        LegacyManager(id=3, user_id=12, alias="carla"),
    )


@pytest.mark.asyncio
async def test_build_mapping_matches_email_case_insensitive(mapper, seed_legacy, add_user, db_session):
    await _seed_employees(seed_legacy)
    ana_id = await add_user("ana@example.com")

    identity = await mapper.build_mapping(db_session)

    assert identity.employee_map == {10: ana_id}
    assert identity.manager_map == {1: ana_id}
    # Bruno no tiene cuenta y Carla no tiene email
    assert identity.unmapped_count == 2


@pytest.mark.asyncio
async def test_build_mapping_creates_disabled_system_user(mapper, seed_legacy, db_session):
    await _seed_employees(seed_legacy)

    identity = await mapper.build_mapping(db_session)

    system_user = await db_session.scalar(select(UserModel).where(UserModel.email == SYSTEM_EMAIL))
    assert system_user is not None
    assert system_user.is_active is False
    assert system_user.password_hash.startswith("!disabled-")
    assert identity.system_user_id == system_user.id


@pytest.mark.asyncio
async def test_build_mapping_reuses_system_user(mapper, db_session):
    first = await mapper.build_mapping(db_session)
    second = await mapper.build_mapping(db_session)

    total = await db_session.scalar(select(func.count()).select_from(UserModel))
    assert first.system_user_id == second.system_user_id
    assert total == 1


@pytest.mark.asyncio
async def test_build_mapping_read_only_does_not_create_system_user(mapper, seed_legacy, db_session):
    await _seed_employees(seed_legacy)

    identity = await mapper.build_mapping(db_session, ensure_system_user=False)

    total = await db_session.scalar(select(func.count()).select_from(UserModel))
    assert identity.system_user_id is None
    assert total == 0


def test_identity_map_resolution_fallbacks():
    identity = IdentityMap(
        employee_map={10: "acc-ana"},
        manager_map={1: "acc-ana"},
        system_user_id="acc-system",
    )

    assert identity.resolve_assignee(1) == "acc-ana"
    assert identity.resolve_assignee(99) is None
    assert identity.resolve_assignee(None) is None
    assert identity.resolve_author(10) == "acc-ana"
    assert identity.resolve_author(500) == "acc-system"
    assert identity.resolve_author(None) == "acc-system"
    assert identity.is_employee(10) is True
    assert identity.is_employee(500) is False
