"""
Tests unitarios para LegacyMigrationUseCases.

Usan bases SQLite en memoria para destino y legacy; verifican idempotencia
por ledger, aislamiento de fallos por registro, dry-run sin escrituras y el
ciclo de vida de la corrida en background.
"""
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from app.application.services import ticket_transformer
from app.application.use_cases.legacy_migration_use_cases import (
    BatchResult,
    LegacyMigrationUseCases,
    MISSING_IN_LEGACY_ERROR,
)
from app.infrastructure.database.models import (
    CommentModel,
    EntityModel,
    LegacyMigrationLogModel,
    UserModel,
    WorkspaceModel,
)
from app.infrastructure.legacy.models import LegacyAnswer, LegacyCustomer, LegacyManager, LegacyRequest
from app.infrastructure.legacy.repository import LegacyRepository
from app.infrastructure.legacy.urls import LegacyUrlBuilder
from app.infrastructure.repositories.migration_log_repository import (
    MigrationLogRepository,
    STATUS_COMPLETED,
    STATUS_FAILED,
)
from app.shared.exceptions.domain import (
    LegacyUnavailableException,
    MigrationAlreadyRunningException,
    MigrationNotInitializedException,
)


@pytest_asyncio.fixture
async def migration(legacy_repo, session_factory):
    return LegacyMigrationUseCases(
        legacy_repo,
        session_factory,
        workspace_prefix="LEG",
        urls=LegacyUrlBuilder("https://crm.test"),
    )


@pytest_asyncio.fixture
async def seeded(seed_legacy):
    """Dos tickets; el segundo con dos respuestas (cliente y empleado)."""
    await seed_legacy(
        LegacyCustomer(id=10, first_name="Ana", email="ana@example.com", is_manager=1),
        LegacyCustomer(id=500, first_name="Juan", email="juan@cliente.com", is_manager=0),
        LegacyManager(id=1, user_id=10, alias="ana"),
        LegacyRequest(id=1, subject="Primero", customer_id=500, manager_id=1, closed=1,
                      created_at=datetime(2023, 1, 1), updated_at=datetime(2023, 1, 2)),
        LegacyRequest(id=2, subject="Segundo", customer_id=500, manager_id=1, closed=0,
                      created_at=datetime(2023, 2, 1), updated_at=datetime(2023, 2, 2)),
        LegacyAnswer(id=1, request_id=2, customer_id=500, text="Hola", created_at=datetime(2023, 2, 1, 10)),
        LegacyAnswer(id=2, request_id=2, customer_id=10, text="Respuesta", created_at=datetime(2023, 2, 1, 11)),
    )


async def _count(session_factory, model) -> int:
    async with session_factory() as db:
        return await db.scalar(select(func.count()).select_from(model))


async def _all_requests(legacy_repo):
    return await legacy_repo.get_requests_batch(0, 100)


# =========================================================================
# migrate_batch
# =========================================================================

@pytest.mark.asyncio
async def test_migrate_batch_skips_ledger_rows_and_counts_comments(
    migration, seeded, seed_legacy, add_user, legacy_repo, session_factory
):
    """Un ticket ya en el ledger se omite; el otro se migra con sus dos comentarios y sin la respuesta vacía."""
    await add_user("Ana@Example.com")
    await seed_legacy(
        LegacyAnswer(id=3, request_id=2, customer_id=500, text="   ", created_at=datetime(2023, 2, 1, 12)),
    )
    async with session_factory() as db:
        await MigrationLogRepository(db).record_completed(1, "previous-entity", 0)
        await db.commit()
    await migration.prepare()

    result = await migration.migrate_batch(await _all_requests(legacy_repo))

    assert result == BatchResult(processed=1, skipped=1, failed=0, comments_created=2)
    assert await _count(session_factory, EntityModel) == 1
    assert await _count(session_factory, CommentModel) == 2
    async with session_factory() as db:
        entity = await db.scalar(select(EntityModel).where(EntityModel.custom_id == "LEG-2"))
        log = (await MigrationLogRepository(db).get_by_legacy_ids([2]))[2]
    assert entity.comment_count == 2
    assert entity.first_response_at == datetime(2023, 2, 1, 11)
    assert log.status == STATUS_COMPLETED
    assert log.entity_id == entity.id
    assert log.comments_count == 2


@pytest.mark.asyncio
async def test_migrate_batch_is_idempotent(migration, seeded, legacy_repo, session_factory):
    await migration.prepare()
    requests = await _all_requests(legacy_repo)

    first = await migration.migrate_batch(requests)
    second = await migration.migrate_batch(requests)

    assert first.processed == 2
    assert second == BatchResult(processed=0, skipped=2, failed=0, comments_created=0)
    assert await _count(session_factory, EntityModel) == 2
    assert await _count(session_factory, CommentModel) == 2
    assert await _count(session_factory, LegacyMigrationLogModel) == 2


@pytest.mark.asyncio
async def test_migrate_batch_isolates_record_failure(migration, seeded, legacy_repo, session_factory):
    """Un ticket que falla queda como 'failed' sin revertir al resto del batch."""
    original = ticket_transformer.transform_ticket

    def _failing_transform(request, *args, **kwargs):
        if request.id == 1:
            raise ValueError("payload inválido")
        return original(request, *args, **kwargs)

    await migration.prepare()
    with patch(
        "app.application.use_cases.legacy_migration_use_cases.transform_ticket",
        side_effect=_failing_transform,
    ):
        result = await migration.migrate_batch(await _all_requests(legacy_repo))

    assert result.processed == 1
    assert result.failed == 1
    async with session_factory() as db:
        logs = await MigrationLogRepository(db).get_by_legacy_ids([1, 2])
    assert logs[1].status == STATUS_FAILED
    assert "payload inválido" in logs[1].error_message
    assert logs[1].entity_id is None
    assert logs[2].status == STATUS_COMPLETED
    assert await _count(session_factory, EntityModel) == 1


@pytest.mark.asyncio
async def test_migrate_batch_existing_natural_key_is_skipped(migration, seeded, legacy_repo, session_factory):
    """Si la entidad LEG-<id> ya existe se registra en el ledger sin duplicar hijos."""
    _, workspace_id = await migration.prepare()
    async with session_factory() as db:
        db.add(EntityModel(id="pre-existing", custom_id="LEG-2", workspace_id=workspace_id,
                           title="Manual", status="new", data={}, comment_count=0))
        await db.commit()

    result = await migration.migrate_batch(await _all_requests(legacy_repo))

    assert result.processed == 1
    assert result.skipped == 1
    assert await _count(session_factory, CommentModel) == 0
    async with session_factory() as db:
        log = (await MigrationLogRepository(db).get_by_legacy_ids([2]))[2]
    assert log.entity_id == "pre-existing"


@pytest.mark.asyncio
async def test_migrate_batch_requires_prepare(migration, seeded, legacy_repo):
    with pytest.raises(MigrationNotInitializedException):
        await migration.migrate_batch(await _all_requests(legacy_repo))


# =========================================================================
# start / stop / progreso
# =========================================================================

@pytest.mark.asyncio
async def test_dry_run_writes_nothing(migration, seeded, session_factory):
    result = await migration.start(dry_run=True)

    assert "Dry run: 2 tickets" in result["message"]
    assert migration.is_running() is False
    assert await _count(session_factory, UserModel) == 0
    assert await _count(session_factory, WorkspaceModel) == 0
    assert await _count(session_factory, EntityModel) == 0
    assert await _count(session_factory, LegacyMigrationLogModel) == 0


@pytest.mark.asyncio
async def test_start_runs_batches_in_background(migration, seeded, session_factory):
    await migration.start(batch_size=1)
    progress = await migration.wait_for_completion()

    assert progress.is_running is False
    assert progress.total == 2
    assert progress.total_batches == 2
    assert progress.current_batch == 2
    assert progress.processed == 2
    assert progress.comments == 2
    assert progress.failed == 0
    assert progress.completed_at is not None
    assert await _count(session_factory, EntityModel) == 2


@pytest.mark.asyncio
async def test_start_respects_max_requests(migration, seeded):
    await migration.start(batch_size=10, max_requests=1)
    progress = await migration.wait_for_completion()

    assert progress.total == 1
    assert progress.processed == 1


@pytest.mark.asyncio
async def test_start_rejects_second_run(migration, seeded):
    await migration.start(batch_size=1)

    with pytest.raises(MigrationAlreadyRunningException) as exc_info:
        await migration.start()

    assert exc_info.value.status_code == 409
    await migration.wait_for_completion()


@pytest.mark.asyncio
async def test_start_rejects_unavailable_legacy(session_factory):
    migration = LegacyMigrationUseCases(LegacyRepository(None), session_factory)

    with pytest.raises(LegacyUnavailableException) as exc_info:
        await migration.start()

    assert exc_info.value.status_code == 503
    assert migration.get_progress().is_running is False


@pytest.mark.asyncio
async def test_stop_before_first_batch(migration, seeded, session_factory):
    await migration.start(batch_size=1)
    response = migration.stop()
    progress = await migration.wait_for_completion()

    assert "Deteniendo" in response["message"]
    assert progress.processed == 0
    assert progress.is_running is False
    assert await _count(session_factory, EntityModel) == 0


@pytest.mark.asyncio
async def test_stop_when_idle(migration):
    assert migration.stop() == {"message": "La migración no está en ejecución"}


@pytest.mark.asyncio
async def test_batch_level_failure_is_counted_and_loop_continues(migration, seeded):
    with patch.object(
        migration,
        "migrate_batch",
        new_callable=AsyncMock,
        side_effect=[RuntimeError("conexión perdida"), BatchResult(processed=1, comments_created=2)],
    ):
        await migration.start(batch_size=1)
        progress = await migration.wait_for_completion()

    assert progress.failed == 1
    assert progress.failed_batches == 1
    assert progress.processed == 1
    assert progress.current_batch == 2
    assert progress.error is None


@pytest.mark.asyncio
async def test_run_totals_add_up_with_record_failure(migration, seeded, seed_legacy, session_factory):
    """total == processed + skipped + failed cuando un ticket falla dentro de un batch."""
    await seed_legacy(
        LegacyRequest(id=3, subject="Tercero", customer_id=500, closed=0,
                      created_at=datetime(2023, 3, 1), updated_at=datetime(2023, 3, 1)),
    )
    async with session_factory() as db:
        await MigrationLogRepository(db).record_completed(3, "previous-entity", 0)
        await db.commit()
    original = ticket_transformer.transform_ticket

    def _failing_transform(request, *args, **kwargs):
        if request.id == 1:
            raise ValueError("payload inválido")
        return original(request, *args, **kwargs)

    with patch(
        "app.application.use_cases.legacy_migration_use_cases.transform_ticket",
        side_effect=_failing_transform,
    ):
        await migration.start(batch_size=10)
        progress = await migration.wait_for_completion()

    assert progress.total == 3
    assert (progress.processed, progress.skipped, progress.failed) == (1, 1, 1)
    assert progress.total == progress.processed + progress.skipped + progress.failed
    assert progress.failed_batches == 0
    async with session_factory() as db:
        failed = await MigrationLogRepository(db).get_failed()
    assert [row.legacy_request_id for row in failed] == [1]


@pytest.mark.asyncio
async def test_second_run_inserts_nothing(migration, seeded, session_factory):
    await migration.start(batch_size=1)
    first = await migration.wait_for_completion()
    entities = await _count(session_factory, EntityModel)
    comments = await _count(session_factory, CommentModel)

    await migration.start(batch_size=1)
    second = await migration.wait_for_completion()

    assert first.processed == 2
    assert (second.processed, second.skipped, second.failed) == (0, 2, 0)
    assert second.comments == 0
    assert await _count(session_factory, EntityModel) == entities == 2
    assert await _count(session_factory, CommentModel) == comments
    assert await _count(session_factory, LegacyMigrationLogModel) == 2


@pytest.mark.asyncio
async def test_get_progress_returns_copy(migration):
    snapshot = migration.get_progress()
    snapshot.processed = 999

    assert migration.get_progress().processed == 0


# =========================================================================
# Operaciones auxiliares
# =========================================================================

@pytest.mark.asyncio
async def test_retry_failed_reprocesses_failed_rows(migration, seeded, session_factory):
    async with session_factory() as db:
        await MigrationLogRepository(db).record_failed(2, "timeout")
        await db.commit()

    result = await migration.retry_failed()

    assert result["retried"] == 1
    assert result["processed"] == 1
    assert result["failed"] == 0
    async with session_factory() as db:
        ledger = MigrationLogRepository(db)
        assert await ledger.count_by_status(STATUS_FAILED) == 0
        assert (await ledger.get_by_legacy_ids([2]))[2].status == STATUS_COMPLETED
    assert migration.is_running() is False


@pytest.mark.asyncio
async def test_retry_failed_without_failures(migration, seeded):
    result = await migration.retry_failed()

    assert result["retried"] == 0


@pytest.mark.asyncio
async def test_retry_failed_keeps_failed_row_when_batch_rolls_back(migration, seeded, session_factory):
    async with session_factory() as db:
        await MigrationLogRepository(db).record_failed(2, "timeout")
        await db.commit()

    with patch.object(
        migration, "migrate_batch", new_callable=AsyncMock, side_effect=RuntimeError("conexión perdida")
    ):
        crashed = await migration.retry_failed()

    assert crashed["processed"] == 0
    assert crashed["failed"] == 1
    async with session_factory() as db:
        failed = await MigrationLogRepository(db).get_failed()
    assert [row.legacy_request_id for row in failed] == [2]

    # La siguiente llamada vuelve a encontrar el ticket y lo migra
    retried = await migration.retry_failed()

    assert retried["retried"] == 1
    assert retried["processed"] == 1
    async with session_factory() as db:
        assert await MigrationLogRepository(db).count_by_status(STATUS_FAILED) == 0


@pytest.mark.asyncio
async def test_retry_failed_rolls_back_ledger_delete_on_batch_error(migration, seeded, session_factory):
    """Un error fuera del límite por registro revierte también el borrado de la fila fallida."""
    async with session_factory() as db:
        await MigrationLogRepository(db).record_failed(2, "timeout")
        await db.commit()

    with patch.object(
        migration.legacy, "get_answers_for_requests", new_callable=AsyncMock, side_effect=RuntimeError("legacy caída")
    ):
        result = await migration.retry_failed()

    assert result["failed"] == 1
    async with session_factory() as db:
        row = (await MigrationLogRepository(db).get_by_legacy_ids([2]))[2]
    assert row.status == STATUS_FAILED
    assert row.error_message == "timeout"
    assert await _count(session_factory, EntityModel) == 0


@pytest.mark.asyncio
async def test_retry_failed_keeps_rows_missing_in_legacy(migration, seeded, session_factory):
    async with session_factory() as db:
        ledger = MigrationLogRepository(db)
        await ledger.record_failed(2, "timeout")
        await ledger.record_failed(99, "timeout")
        await db.commit()

    result = await migration.retry_failed()

    assert result["retried"] == 2
    assert result["processed"] == 1
    assert result["failed"] == 1
    async with session_factory() as db:
        failed = await MigrationLogRepository(db).get_failed()
    assert [row.legacy_request_id for row in failed] == [99]
    assert failed[0].error_message == MISSING_IN_LEGACY_ERROR


@pytest.mark.asyncio
async def test_get_preview_counts(migration, seeded, add_user, session_factory):
    await add_user("ana@example.com")

    preview = await migration.get_preview()

    assert preview["legacy_available"] is True
    assert preview["legacy_requests_count"] == 2
    assert preview["legacy_answers_count"] == 2
    assert preview["already_migrated_count"] == 0
    assert preview["remaining_count"] == 2
    assert preview["employee_mapping_count"] == 1
    assert preview["workspace_exists"] is False
    # El preview no crea la cuenta de sistema
    assert await _count(session_factory, UserModel) == 1


@pytest.mark.asyncio
async def test_update_assignees_fills_missing(migration, seeded, legacy_repo, add_user, session_factory):
    await migration.prepare()
    await migration.migrate_batch(await _all_requests(legacy_repo))
    ana_id = await add_user("ana@example.com")

    result = await migration.update_assignees()

    assert result == {"updated": 2, "total": 2}
    async with session_factory() as db:
        assignees = (await db.scalars(select(EntityModel.assignee_id))).all()
    assert set(assignees) == {ana_id}


@pytest.mark.asyncio
async def test_get_migration_log_filters_by_status(migration, session_factory):
    async with session_factory() as db:
        ledger = MigrationLogRepository(db)
        await ledger.record_completed(1, "e-1", 0)
        await ledger.record_failed(2, "boom")
        await db.commit()

    page = await migration.get_migration_log(status=STATUS_FAILED)

    assert page["total"] == 1
    assert [row.legacy_request_id for row in page["items"]] == [2]
