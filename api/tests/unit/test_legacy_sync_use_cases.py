"""
Tests unitarios para LegacySyncUseCases (tick incremental).
"""
import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import func, select, update

from app.application.use_cases.legacy_migration_use_cases import LegacyMigrationUseCases
from app.application.use_cases.legacy_sync_use_cases import IncrementalSyncResult, LegacySyncUseCases
from app.infrastructure.database.models import CommentModel, EntityModel
from app.infrastructure.legacy.models import LegacyAnswer, LegacyCustomer, LegacyManager, LegacyRequest
from app.infrastructure.repositories.migration_log_repository import MigrationLogRepository, STATUS_FAILED


NOW = datetime.now().replace(microsecond=0)


@pytest_asyncio.fixture
async def migration(legacy_repo, session_factory):
    return LegacyMigrationUseCases(legacy_repo, session_factory, workspace_prefix="LEG")


@pytest_asyncio.fixture
async def sync(migration):
    return LegacySyncUseCases(migration, interval_minutes=60, fetch_limit=100, overlap_seconds=0, enabled=True)


@pytest_asyncio.fixture
async def migrated_ticket(migration, seed_legacy, legacy_repo, add_user):
    """Ticket 1 ya migrado con una respuesta del empleado."""
    await add_user("ana@example.com")
    await seed_legacy(
        LegacyCustomer(id=10, first_name="Ana", email="ana@example.com", is_manager=1),
        LegacyManager(id=1, user_id=10),
        LegacyRequest(id=1, subject="Abierto", customer_id=500, manager_id=1, closed=0,
                      created_at=NOW - timedelta(hours=3), updated_at=NOW - timedelta(hours=2)),
        LegacyAnswer(id=1, request_id=1, customer_id=10, text="Primera",
                     created_at=NOW - timedelta(minutes=30)),
    )
    await migration.prepare()
    await migration.migrate_batch(await legacy_repo.get_requests_batch(0, 10))


async def _touch_request(legacy_session_factory, request_id: int, **values) -> None:
    async with legacy_session_factory() as session:
        await session.execute(update(LegacyRequest).where(LegacyRequest.id == request_id).values(**values))
        await session.commit()


@pytest.mark.asyncio
async def test_run_sync_creates_new_and_patches_known(
    sync, migrated_ticket, seed_legacy, legacy_session_factory, session_factory
):
    await _touch_request(legacy_session_factory, 1, closed=1, updated_at=NOW - timedelta(minutes=10))
    await seed_legacy(
        LegacyAnswer(id=2, request_id=1, customer_id=500, text="<p>Gracias</p>",
                     created_at=NOW - timedelta(minutes=5)),
        LegacyRequest(id=3, subject="Nuevo", customer_id=500, closed=0,
                      created_at=NOW - timedelta(minutes=20), updated_at=NOW - timedelta(minutes=20)),
    )

    result = await sync.run_sync()

    assert result.new == 1
    assert result.updated == 1
    # La respuesta ya migrada no se duplica
    assert result.new_comments == 1
    assert result.errors == 0
    assert sync.cursor is not None
    async with session_factory() as db:
        entity = await db.scalar(select(EntityModel).where(EntityModel.custom_id == "LEG-1"))
        contents = (await db.scalars(
            select(CommentModel.content).where(CommentModel.entity_id == entity.id).order_by(CommentModel.created_at)
        )).all()
        created = await db.scalar(select(EntityModel).where(EntityModel.custom_id == "LEG-3"))
    assert entity.status == "closed"
    assert entity.resolved_at == NOW - timedelta(minutes=10)
    assert entity.comment_count == 2
    assert contents == ["Primera", "Gracias"]
    assert created is not None


@pytest.mark.asyncio
async def test_second_tick_after_cursor_advance_is_empty(sync, migrated_ticket, legacy_session_factory):
    await _touch_request(legacy_session_factory, 1, updated_at=NOW - timedelta(minutes=10))

    first = await sync.run_sync()
    second = await sync.run_sync()

    assert first.updated == 1
    assert (second.new, second.updated, second.new_comments, second.errors) == (0, 0, 0, 0)
    assert second.synced_at is not None
    assert sync.get_status().total_synced == 1


@pytest.mark.asyncio
async def test_failed_ledger_rows_are_left_for_retry(sync, seed_legacy, session_factory):
    await seed_legacy(
        LegacyRequest(id=7, subject="Fallido", closed=0,
                      created_at=NOW - timedelta(minutes=15), updated_at=NOW - timedelta(minutes=15)),
    )
    async with session_factory() as db:
        await MigrationLogRepository(db).record_failed(7, "timeout")
        await db.commit()

    result = await sync.run_sync()

    assert (result.new, result.updated) == (0, 0)
    async with session_factory() as db:
        assert await MigrationLogRepository(db).count_by_status(STATUS_FAILED) == 1


@pytest.mark.asyncio
async def test_overlapping_tick_returns_zero_result(sync, legacy_repo):
    release = asyncio.Event()

    async def _pending_fetch(since, limit, after_id=None):
        await release.wait()
        return []

    with patch.object(
        legacy_repo, "get_requests_modified_since", new_callable=AsyncMock, side_effect=_pending_fetch
    ) as fetch:
        first_tick = asyncio.create_task(sync.run_sync())
        await asyncio.sleep(0)
        assert sync.get_status().is_syncing is True

        second = await sync.run_sync()
        release.set()
        first = await first_tick

    assert second == IncrementalSyncResult()
    assert fetch.await_count == 1
    assert first.synced_at is not None
    assert sync.cursor == first.synced_at
    assert sync.get_status().is_syncing is False


@pytest.mark.asyncio
async def test_full_page_moves_cursor_to_last_row_read(migration, seed_legacy, session_factory):
    """Con más filas que fetch_limit, los ticks siguientes leen el resto (también los empates de fecha)."""
    sync = LegacySyncUseCases(migration, interval_minutes=60, fetch_limit=2, overlap_seconds=0, enabled=True)
    minutes_ago = {1: 49, 2: 48, 3: 48, 4: 46, 5: 45}
    await seed_legacy(*[
        LegacyRequest(id=i, subject=f"Ticket {i}", customer_id=500, closed=0,
                      created_at=NOW - timedelta(minutes=50), updated_at=NOW - timedelta(minutes=minutes))
        for i, minutes in minutes_ago.items()
    ])

    first = await sync.run_sync()

    assert first.new == 2
    assert sync.cursor == NOW - timedelta(minutes=48)

    second = await sync.run_sync()
    third = await sync.run_sync()

    assert (second.new, third.new) == (2, 1)
    assert sync.cursor == third.synced_at
    async with session_factory() as db:
        assert await db.scalar(select(func.count()).select_from(EntityModel)) == 5


@pytest.mark.asyncio
async def test_new_rows_batch_error_holds_cursor(sync, migration, seed_legacy, session_factory):
    await seed_legacy(
        LegacyRequest(id=1, subject="Uno", customer_id=500, closed=0,
                      created_at=NOW - timedelta(minutes=30), updated_at=NOW - timedelta(minutes=30)),
        LegacyRequest(id=2, subject="Dos", customer_id=500, closed=0,
                      created_at=NOW - timedelta(minutes=20), updated_at=NOW - timedelta(minutes=20)),
    )

    with patch.object(
        migration, "migrate_batch", new_callable=AsyncMock, side_effect=RuntimeError("conexión perdida")
    ):
        first = await sync.run_sync()

    assert first.errors == 2
    assert sync.cursor < NOW - timedelta(minutes=30)

    second = await sync.run_sync()

    assert second.new == 2
    assert second.errors == 0
    async with session_factory() as db:
        assert await db.scalar(select(func.count()).select_from(EntityModel)) == 2


@pytest.mark.asyncio
async def test_tick_skipped_while_full_migration_runs(sync, migration, legacy_repo):
    migration._progress.is_running = True

    with patch.object(legacy_repo, "get_requests_modified_since", new_callable=AsyncMock) as fetch:
        result = await sync.run_sync()

    fetch.assert_not_called()
    assert result == IncrementalSyncResult()
    assert sync.cursor is None


@pytest.mark.asyncio
async def test_fetch_error_does_not_advance_cursor(sync, legacy_repo):
    with patch.object(
        legacy_repo,
        "get_requests_modified_since",
        new_callable=AsyncMock,
        side_effect=RuntimeError("legacy caída"),
    ):
        result = await sync.run_sync()

    assert result.errors == 1
    assert sync.cursor is None
    assert sync.get_status().is_syncing is False


@pytest.mark.asyncio
async def test_scheduled_tick_respects_enabled_flag(sync):
    sync.disable()

    with patch.object(sync, "run_sync", new_callable=AsyncMock) as run_sync:
        await sync.scheduled_tick()
        run_sync.assert_not_called()

        sync.enable()
        await sync.scheduled_tick()
        run_sync.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_status_initial(sync):
    status = sync.get_status()

    assert status.enabled is True
    assert status.is_syncing is False
    assert status.cursor is None
    assert status.last_result is None
    assert status.interval_minutes == 60
