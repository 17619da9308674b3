"""
Sincronización incremental de tickets legacy (tick periódico).

Cada tick toma los tickets modificados desde el cursor:
- tickets nuevos (sin fila en el ledger) pasan por el mismo camino por batch
  que la migración completa;
- tickets ya migrados se parchean en sitio (estado, resolved_at, respuestas
  nuevas y comment_count).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from app.application.services.ticket_transformer import clean_html, map_status, resolved_at
from app.application.services.identity_mapper import IdentityMap
from app.application.use_cases.legacy_migration_use_cases import LegacyMigrationUseCases
from app.core.config import settings
from app.infrastructure.legacy.models import LegacyAnswer, LegacyRequest
from app.infrastructure.legacy.repository import legacy_now
from app.infrastructure.repositories.entity_repository import EntityRepository
from app.infrastructure.repositories.migration_log_repository import (
    MigrationLogRepository,
    STATUS_COMPLETED,
)


@dataclass
class IncrementalSyncResult:
    new: int = 0
    updated: int = 0
    new_comments: int = 0
    errors: int = 0
    synced_at: Optional[datetime] = None


@dataclass(frozen=True)
class IncrementalSyncStatus:
    enabled: bool
    is_syncing: bool
    cursor: Optional[datetime]
    last_result: Optional[IncrementalSyncResult]
    total_synced: int
    interval_minutes: int


class LegacySyncUseCases:
    """
    Scheduler incremental. El estado (cursor, flags) vive en esta instancia;
    el disparo periódico lo hace APScheduler llamando a run_sync().
    """

    def __init__(
        self,
        migration: LegacyMigrationUseCases,
        *,
        interval_minutes: Optional[int] = None,
        fetch_limit: Optional[int] = None,
        overlap_seconds: Optional[int] = None,
        enabled: Optional[bool] = None,
    ):
        self._migration = migration
        self._legacy = migration.legacy
        self._session_factory = migration.session_factory
        self.interval_minutes = interval_minutes or settings.LEGACY_SYNC_INTERVAL_MINUTES
        self._fetch_limit = fetch_limit or settings.LEGACY_SYNC_FETCH_LIMIT
        self._overlap = timedelta(
            seconds=settings.LEGACY_SYNC_OVERLAP_SECONDS if overlap_seconds is None else overlap_seconds
        )
        self._enabled = settings.LEGACY_SYNC_ENABLED if enabled is None else enabled

        self._is_syncing = False
        self._cursor: Optional[datetime] = None
        self._cursor_id: Optional[int] = None
        self._last_result: Optional[IncrementalSyncResult] = None
        self._total_synced = 0

    # ==================== CONTROL ====================

    def enable(self) -> Dict[str, str]:
        self._enabled = True
        logger.info("Sincronización incremental legacy habilitada")
        return {"message": "Sincronización incremental habilitada"}

    def disable(self) -> Dict[str, str]:
        self._enabled = False
        logger.info("Sincronización incremental legacy deshabilitada")
        return {"message": "Sincronización incremental deshabilitada"}

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def cursor(self) -> Optional[datetime]:
        return self._cursor

    def get_status(self) -> IncrementalSyncStatus:
        return IncrementalSyncStatus(
            enabled=self._enabled,
            is_syncing=self._is_syncing,
            cursor=self._cursor,
            last_result=replace(self._last_result) if self._last_result else None,
            total_synced=self._total_synced,
            interval_minutes=self.interval_minutes,
        )

    async def scheduled_tick(self) -> None:
        """Job de APScheduler: respeta el flag enabled."""
        if not self._enabled:
            return
        await self.run_sync()

    # ==================== TICK ====================

    async def run_sync(self) -> IncrementalSyncResult:
        """
        Ejecuta un tick de sincronización.

        Si ya hay un tick en curso, o la migración completa está corriendo,
        retorna un resultado en cero sin tocar el cursor.
        """
        if self._is_syncing:
            logger.debug("Tick incremental omitido: ya hay uno en curso")
            return IncrementalSyncResult()
        if self._migration.is_running():
            logger.debug("Tick incremental omitido: migración completa en curso")
            return IncrementalSyncResult()
        if not self._legacy.is_available():
            return IncrementalSyncResult()

        self._is_syncing = True
        tick_started = legacy_now()
        result = IncrementalSyncResult()
        try:
            if self._cursor_id is not None:
                # Continuación de una página llena: keyset sin solape
                since, after_id = self._cursor, self._cursor_id
            else:
                since = (self._cursor or tick_started - timedelta(minutes=self.interval_minutes)) - self._overlap
                after_id = None

            try:
                rows = await self._legacy.get_requests_modified_since(
                    since, limit=self._fetch_limit, after_id=after_id
                )
            except Exception as e:
                logger.error(f"Tick incremental: error leyendo legacy: {e}")
                result.errors = 1
                return result

            held_back = await self._apply(rows, since, result) if rows else None

            self._cursor, self._cursor_id = self._next_cursor(rows, tick_started, held_back)
            result.synced_at = tick_started
            self._total_synced += result.new + result.updated
            self._last_result = result

            if rows:
                logger.info(
                    f"Tick incremental: {result.new} nuevos, {result.updated} actualizados, "
                    f"{result.new_comments} comentarios, {result.errors} errores"
                )
            return result
        finally:
            self._is_syncing = False

    def _next_cursor(
        self,
        rows: Sequence[LegacyRequest],
        tick_started: datetime,
        held_back: Optional[datetime],
    ) -> Tuple[datetime, Optional[int]]:
        """
        Cursor (fecha, id de desempate) para el siguiente tick.

        - Lectura completa (menos filas que fetch_limit): inicio del tick.
        - Página llena: (updated_at, id) de la última fila leída; el resto,
          incluidos los tickets con la misma fecha, se lee en los ticks siguientes.
        - Batch de tickets nuevos revertido: justo antes del updated_at más
          antiguo de ese batch, para volver a leerlos.

        Los fallos por registro no retienen el cursor: quedan en el ledger
        para retry_failed.
        """
        cursor, cursor_id = tick_started, None
        if len(rows) >= self._fetch_limit and rows[-1].updated_at:
            cursor, cursor_id = rows[-1].updated_at, rows[-1].id
        if held_back is not None and held_back <= cursor:
            cursor, cursor_id = held_back - timedelta(microseconds=1), None
        return cursor, cursor_id

    async def _apply(
        self,
        rows: Sequence[LegacyRequest],
        since: datetime,
        result: IncrementalSyncResult,
    ) -> Optional[datetime]:
        """
        Aplica un tick. Retorna el updated_at más antiguo de los tickets nuevos
        cuyo batch se revirtio (None si no hubo error de batch).
        """
        held_back: Optional[datetime] = None
        async with self._session_factory() as db:
            ledger_rows = await MigrationLogRepository(db).get_by_legacy_ids(r.id for r in rows)

        new_rows: List[LegacyRequest] = [r for r in rows if r.id not in ledger_rows]
        known = [
            (r, ledger_rows[r.id].entity_id)
            for r in rows
            if r.id in ledger_rows
            and ledger_rows[r.id].status == STATUS_COMPLETED
            and ledger_rows[r.id].entity_id
        ]

        identity: Optional[IdentityMap] = None
        workspace_id: Optional[str] = None
        if new_rows or known:
            identity, workspace_id = await self._migration.prepare()

        if new_rows:
            try:
                batch = await self._migration.migrate_batch(new_rows, identity=identity, workspace_id=workspace_id)
                result.new += batch.processed
                result.new_comments += batch.comments_created
                result.errors += batch.failed
            except Exception as e:
                logger.error(f"Tick incremental: error migrando {len(new_rows)} tickets nuevos: {e}")
                result.errors += len(new_rows)
                held_back = min((r.updated_at for r in new_rows if r.updated_at), default=None)

        if known:
            await self._patch_known(known, since, identity, result)
        return held_back

    async def _patch_known(
        self,
        known: Sequence[tuple],
        since: datetime,
        identity: IdentityMap,
        result: IncrementalSyncResult,
    ) -> None:
        answers = await self._legacy.get_answers_since(since, [r.id for r, _ in known])
        by_request: Dict[int, List[LegacyAnswer]] = {}
        for answer in answers:
            by_request.setdefault(answer.request_id, []).append(answer)

        async with self._session_factory() as db:
            async with db.begin():
                entities = EntityRepository(db)
                for request, entity_id in known:
                    try:
                        async with db.begin_nested():
                            created = await self._patch_entity(
                                entities, request, entity_id, by_request.get(request.id, []), identity
                            )
                    except Exception as e:
                        logger.warning(f"Tick incremental: error actualizando ticket {request.id}: {e}")
                        result.errors += 1
                        continue
                    result.updated += 1
                    result.new_comments += created

    async def _patch_entity(
        self,
        entities: EntityRepository,
        request: LegacyRequest,
        entity_id: str,
        answers: Sequence[LegacyAnswer],
        identity: IdentityMap,
    ) -> int:
        created = 0
        for answer in answers:
            if not answer.text or not answer.text.strip():
                continue
            if await entities.comment_exists(entity_id, answer.created_at):
                continue
            await entities.add_comment(
                entity_id, identity.resolve_author(answer.customer_id), clean_html(answer.text), answer.created_at
            )
            created += 1

        fields = {
            "status": map_status(request),
            "resolved_at": resolved_at(request),
            "last_activity_at": request.updated_at or request.created_at,
            "comment_count": await entities.count_comments(entity_id),
        }
        if request.updated_at:
            fields["updated_at"] = request.updated_at
        await entities.update_fields(entity_id, **fields)
        return created
