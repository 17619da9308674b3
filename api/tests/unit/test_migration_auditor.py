"""
Tests unitarios para ValidationAuditor y el calculo de cobertura.
"""
from datetime import datetime

import pytest

from app.application.services.migration_auditor import ValidationAuditor, compute_coverage
from app.application.use_cases.legacy_migration_use_cases import LegacyMigrationUseCases
from app.infrastructure.legacy.models import LegacyRequest
from app.infrastructure.repositories.migration_log_repository import MigrationLogRepository


@pytest.mark.parametrize(
    "completed, source_total, expected",
    [
        (0, 0, 0),
        (5, 0, 0),
        (0, 10, 0),
        (1, 3, 33),
        (2, 3, 67),
        (1, 2, 50),
        (10, 10, 100),
        (15, 10, 100),
    ],
)
def test_compute_coverage(completed, source_total, expected):
    assert compute_coverage(completed, source_total) == expected


@pytest.mark.asyncio
async def test_validate_empty_destination(legacy_repo, session_factory):
    report = await ValidationAuditor(legacy_repo, session_factory, "LEG").validate()

    assert report.entities_created == 0
    assert report.legacy_total == 0
    assert report.coverage_percent == 0
    assert report.sample_size == 0
    assert report.integrity_errors == 0


@pytest.mark.asyncio
async def test_validate_reports_missing_entities(legacy_repo, seed_legacy, session_factory):
    await seed_legacy(
        LegacyRequest(id=1, subject="A", closed=0, created_at=datetime(2023, 1, 1)),
        LegacyRequest(id=2, subject="B", closed=0, created_at=datetime(2023, 1, 2)),
    )
    migration = LegacyMigrationUseCases(legacy_repo, session_factory, workspace_prefix="LEG")
    await migration.prepare()
    await migration.migrate_batch(await legacy_repo.get_requests_batch(0, 10))
    async with session_factory() as db:
        ledger = MigrationLogRepository(db)
        # Fila completada que apunta a una entidad inexistente
        await ledger.record_completed(3, "ghost-entity", 0)
        await ledger.record_failed(4, "boom")
        await db.commit()

    report = await migration.validate()

    assert report.entities_created == 2
    assert report.legacy_total == 2
    assert report.migration_log_completed == 3
    assert report.migration_log_failed == 1
    assert report.coverage_percent == 100
    assert report.sample_size == 3
    assert report.integrity_errors == 1
