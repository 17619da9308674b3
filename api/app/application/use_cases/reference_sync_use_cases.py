"""
Casos de uso para sincronizar datos de referencia legacy (contrapartes,
contactos, productos y negocios) hacia workspaces de sistema.

Flujo por dominio:
1. ensure_workspace: crea/actualiza el workspace con su esquema de campos.
2. Lectura paginada de legacy (con reintentos y pausa entre batches).
3. Escritura por batch en una transacción, cada registro en un SAVEPOINT.
4. Circuit breaker: si la tasa de errores supera el umbral se corta el sync.

Notas:
- La config de cada dominio es declarativa (ver reference_domains.py).
- Dos corridas del mismo dominio son excluyentes; dominios distintos pueden
  correr en paralelo.
"""

from __future__ import annotations

import asyncio
import html
import time
import uuid
from functools import partial
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.application.services.reference_domains import (
    DEFAULT_DEAL_STATUSES,
    INCREMENTAL_UPDATED_SINCE,
    LOOKUP_CATEGORIES,
    LOOKUP_DEAL_STAGES,
    REFERENCE_DOMAINS,
    SYNC_ORDER,
    ReferenceDomain,
    build_payload,
    get_reference_domain,
    stage_aliases,
    stage_statuses,
)
from app.application.services.ticket_transformer import natural_key
from app.core.config import settings
from app.infrastructure.database.models import WorkspaceModel
from app.infrastructure.external.telegram.telegram_client import TelegramClient
from app.infrastructure.legacy.repository import LegacyRepository
from app.infrastructure.legacy.urls import LegacyUrlBuilder
from app.infrastructure.repositories.entity_repository import EntityRepository
from app.infrastructure.repositories.migration_log_repository import STATUS_COMPLETED
from app.infrastructure.repositories.system_sync_log_repository import SystemSyncLogRepository
from app.infrastructure.repositories.workspace_repository import WorkspaceRepository
from app.shared.exceptions.domain import (
    CircuitBreakerOpenException,
    LegacyUnavailableException,
    MigrationAlreadyRunningException,
    UnknownSyncDomainException,
)
from app.shared.utils.datetime_utils import DateTimeUtils

T = TypeVar("T")


@dataclass
class ReferenceSyncProgress:
    domain: str
    is_running: bool = False
    total_items: int = 0
    processed_items: int = 0
    created_items: int = 0
    updated_items: int = 0
    errors: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_error: Optional[str] = None


@dataclass(frozen=True)
class ReferenceSyncResult:
    domain: str
    created: int
    updated: int
    errors: int
    total_processed: int
    duration_ms: int
    full_sync: bool


@dataclass
class _SyncContext:
    """Datos de apoyo cargados una vez por corrida."""

    workspace_id: str
    lookups: Dict[str, Dict[Any, Any]] = field(default_factory=dict)
    relation_maps: Dict[str, Dict[int, str]] = field(default_factory=dict)
    related_workspace_ids: Dict[str, str] = field(default_factory=dict)


@dataclass
class _BatchCounts:
    created: int = 0
    updated: int = 0
    errors: int = 0


def format_sync_summary(
    results: Sequence[ReferenceSyncResult],
    failures: Dict[str, str],
    *,
    full_sync: bool,
) -> str:
    """Resumen HTML para Telegram de una corrida programada."""
    kind = "completa" if full_sync else "incremental"
    lines = [f"<b>🔄 Sincronización {kind} de datos de referencia</b>", ""]
    for result in results:
        icon = "✅" if result.errors == 0 else "⚠️"
        lines.append(
            f"{icon} <b>{html.escape(result.domain)}</b>: +{result.created} nuevos, "
            f"{result.updated} actualizados, {result.errors} errores "
            f"({result.duration_ms / 1000:.1f}s)"
        )
    for domain, error in failures.items():
        lines.append(f"❌ <b>{html.escape(domain)}</b>: {html.escape(error)}")
    return "\n".join(lines)


class ReferenceSyncUseCases:
    """
    Motor de sincronización de dominios de referencia.

    Una instancia por proceso (creada al startup); el progreso por dominio
    se expone solo mediante copias.
    """

    def __init__(
        self,
        legacy: LegacyRepository,
        session_factory: async_sessionmaker,
        *,
        urls: Optional[LegacyUrlBuilder] = None,
        telegram: Optional[TelegramClient] = None,
        batch_size: Optional[int] = None,
        throttle_seconds: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_base_seconds: Optional[float] = None,
        error_rate_threshold: Optional[float] = None,
        min_processed: Optional[int] = None,
        cron_enabled: Optional[bool] = None,
    ):
        self._legacy = legacy
        self._session_factory = session_factory
        self._urls = urls or LegacyUrlBuilder()
        self._telegram = telegram or TelegramClient()
        self._batch_size = batch_size or settings.REFERENCE_SYNC_BATCH_SIZE
        self._throttle = settings.REFERENCE_SYNC_THROTTLE_SECONDS if throttle_seconds is None else throttle_seconds
        self._retry_attempts = retry_attempts or settings.REFERENCE_SYNC_RETRY_ATTEMPTS
        self._retry_base = (
            settings.REFERENCE_SYNC_RETRY_BASE_SECONDS if retry_base_seconds is None else retry_base_seconds
        )
        self._error_rate = error_rate_threshold or settings.CIRCUIT_BREAKER_ERROR_RATE
        self._min_processed = min_processed or settings.CIRCUIT_BREAKER_MIN_PROCESSED
        self._cron_enabled = settings.REFERENCE_SYNC_CRON_ENABLED if cron_enabled is None else cron_enabled

        self._progress: Dict[str, ReferenceSyncProgress] = {}
        self._running: set[str] = set()
        self._last_cron_run_at: Optional[datetime] = None

    # ==================== ESTADO ====================

    def _get_domain(self, system_type: str) -> ReferenceDomain:
        domain = get_reference_domain(system_type)
        if domain is None:
            raise UnknownSyncDomainException(system_type, list(REFERENCE_DOMAINS))
        return domain

    def is_running(self, system_type: str) -> bool:
        return system_type in self._running

    def get_progress(self, system_type: str) -> ReferenceSyncProgress:
        domain = self._get_domain(system_type)
        progress = self._progress.get(domain.system_type)
        return replace(progress) if progress else ReferenceSyncProgress(domain=domain.system_type)

    def get_status(self) -> Dict[str, Any]:
        return {
            "domains": [self.get_progress(name) for name in SYNC_ORDER],
            "cron_enabled": self._cron_enabled,
            "last_cron_run_at": self._last_cron_run_at,
        }

    def enable_cron(self) -> Dict[str, str]:
        self._cron_enabled = True
        logger.info("Cron de sincronización de referencia habilitado")
        return {"message": "Cron de sincronización habilitado"}

    def disable_cron(self) -> Dict[str, str]:
        self._cron_enabled = False
        logger.info("Cron de sincronización de referencia deshabilitado")
        return {"message": "Cron de sincronización deshabilitado"}

    @property
    def cron_enabled(self) -> bool:
        return self._cron_enabled

    # ==================== WORKSPACES ====================

    async def ensure_workspace(self, system_type: str) -> WorkspaceModel:
        """
        Crea el workspace de sistema del dominio si no existe.

        Si existe pero le faltan campos del esquema actual, se reescriben sus
        secciones; para negocios se refrescan los estados desde las etapas legacy.
        """
        domain = self._get_domain(system_type)
        async with self._session_factory() as db:
            workspace = await self._ensure_workspace(db, domain)
            await db.commit()
            return workspace

    async def ensure_all_workspaces(self) -> List[WorkspaceModel]:
        workspaces = []
        async with self._session_factory() as db:
            for name in SYNC_ORDER:
                workspaces.append(await self._ensure_workspace(db, REFERENCE_DOMAINS[name]))
            await db.commit()
        return workspaces

    async def list_workspaces(self) -> List[WorkspaceModel]:
        async with self._session_factory() as db:
            repo = WorkspaceRepository(db)
            found = [await repo.get_by_system_type(name) for name in SYNC_ORDER]
        return [w for w in found if w is not None]

    async def _ensure_workspace(self, db: AsyncSession, domain: ReferenceDomain) -> WorkspaceModel:
        workspaces = WorkspaceRepository(db)

        related_ids: Dict[str, str] = {}
        for relation in domain.relations:
            related = await self._ensure_workspace(db, self._get_domain(relation.domain))
            related_ids[relation.domain] = related.id

        statuses = None
        if domain.statuses_from_stages:
            stages = await self._legacy.get_deal_stages()
            statuses = stage_statuses(stages) if stages else DEFAULT_DEAL_STATUSES

        workspace = await workspaces.get_by_system_type(domain.system_type)
        if workspace is None:
            workspace = await workspaces.create(
                name=domain.name,
                icon=domain.icon,
                prefix=domain.prefix,
                sections=domain.build_sections(related_ids),
                system_type=domain.system_type,
                statuses=statuses,
            )
            logger.info(f"Workspace de sistema creado: {domain.name} ({workspace.id})")
            return workspace

        existing_fields = {f["id"] for s in (workspace.sections or []) for f in s.get("fields", [])}
        if not domain.field_ids() <= existing_fields:
            workspace.sections = domain.build_sections(related_ids)
            logger.info(f"Workspace {domain.name}: secciones actualizadas con campos nuevos")
        if statuses is not None and workspace.statuses != statuses:
            workspace.statuses = statuses
        await db.flush()
        return workspace

    # ==================== PREVIEW ====================

    async def get_preview(self, system_type: str) -> Dict[str, Any]:
        domain = self._get_domain(system_type)
        total = await self._legacy.count_rows(domain.source_model, domain.source_criteria())
        async with self._session_factory() as db:
            synced = await SystemSyncLogRepository(db).count_completed(domain.system_type)
            workspace = await WorkspaceRepository(db).get_by_system_type(domain.system_type)
        return {
            "domain": domain.system_type,
            "total_legacy": total,
            "already_synced": synced,
            "remaining": max(0, total - synced),
            "workspace_exists": workspace is not None,
            "workspace_id": workspace.id if workspace else None,
        }

    # ==================== SYNC ====================

    async def sync(
        self,
        system_type: str,
        batch_size: Optional[int] = None,
        full_sync: bool = False,
    ) -> ReferenceSyncResult:
        """
        Sincroniza un dominio de referencia.

        Args:
            system_type: counterparties | contacts | products | deals
            batch_size: Filas por batch
            full_sync: Recorre todas las filas y actualiza las ya sincronizadas

        Returns:
            ReferenceSyncResult

        Raises:
            MigrationAlreadyRunningException: el dominio ya se está sincronizando
            CircuitBreakerOpenException: la tasa de errores supero el umbral
        """
        domain = self._get_domain(system_type)
        if domain.system_type in self._running:
            raise MigrationAlreadyRunningException(domain.system_type)
        if not self._legacy.is_available():
            raise LegacyUnavailableException()

        self._running.add(domain.system_type)
        progress = ReferenceSyncProgress(
            domain=domain.system_type, is_running=True, started_at=DateTimeUtils.now_utc()
        )
        self._progress[domain.system_type] = progress
        started = time.monotonic()
        mode = "completo" if full_sync else "incremental"
        logger.info(f"Sync {domain.system_type} ({mode}) iniciado")

        try:
            context = await self._load_context(domain)
            await self._run_pages(domain, context, progress, batch_size or self._batch_size, full_sync)
        except Exception as e:
            progress.last_error = str(e)
            logger.error(f"Sync {domain.system_type} ({mode}) fallido: {e}")
            raise
        finally:
            progress.is_running = False
            progress.completed_at = DateTimeUtils.now_utc()
            self._running.discard(domain.system_type)

        result = ReferenceSyncResult(
            domain=domain.system_type,
            created=progress.created_items,
            updated=progress.updated_items,
            errors=progress.errors,
            total_processed=progress.processed_items,
            duration_ms=int((time.monotonic() - started) * 1000),
            full_sync=full_sync,
        )
        logger.success(
            f"Sync {domain.system_type} ({mode}): {result.created} nuevos, "
            f"{result.updated} actualizados, {result.errors} errores en {result.duration_ms} ms"
        )
        return result

    async def _load_context(self, domain: ReferenceDomain) -> _SyncContext:
        async with self._session_factory() as db:
            workspace = await self._ensure_workspace(db, domain)
            await db.commit()
            context = _SyncContext(workspace_id=workspace.id)

            ledger = SystemSyncLogRepository(db)
            workspaces = WorkspaceRepository(db)
            for relation in domain.relations:
                context.relation_maps[relation.domain] = await ledger.get_entity_map(relation.domain)
                related = await workspaces.get_by_system_type(relation.domain)
                if related:
                    context.related_workspace_ids[relation.domain] = related.id

        lookup_names = {m.lookup for m in domain.field_mappings if m.lookup}
        if domain.status.lookup:
            lookup_names.add(domain.status.lookup)
        if LOOKUP_CATEGORIES in lookup_names:
            categories = await self._with_retry(self._legacy.get_active_categories, "categorías")
            context.lookups[LOOKUP_CATEGORIES] = {c.id: c.name for c in categories}
        if LOOKUP_DEAL_STAGES in lookup_names:
            stages = await self._with_retry(self._legacy.get_deal_stages, "etapas de negocio")
            context.lookups[LOOKUP_DEAL_STAGES] = stage_aliases(stages)
        return context

    async def _incremental_criteria(self, domain: ReferenceDomain) -> tuple[list, int]:
        """Filtro base de la corrida incremental y el id desde el que paginar."""
        criteria = list(domain.source_criteria())
        async with self._session_factory() as db:
            ledger = SystemSyncLogRepository(db)
            if domain.incremental_mode == INCREMENTAL_UPDATED_SINCE:
                last_sync = await ledger.last_sync_time(domain.system_type)
                if last_sync is not None:
                    criteria.append(domain.updated_at_column >= DateTimeUtils.to_legacy_clock(last_sync))
                return criteria, 0
            return criteria, await ledger.max_completed_legacy_id(domain.system_type)

    async def _run_pages(
        self,
        domain: ReferenceDomain,
        context: _SyncContext,
        progress: ReferenceSyncProgress,
        batch_size: int,
        full_sync: bool,
    ) -> None:
        if full_sync:
            criteria, last_id = list(domain.source_criteria()), 0
        else:
            criteria, last_id = await self._incremental_criteria(domain)

        progress.total_items = await self._legacy.count_rows(
            domain.source_model, [*criteria, domain.id_column > last_id]
        )
        offset = 0
        while True:
            fetch = partial(
                self._legacy.get_rows_page,
                domain.source_model,
                criteria=criteria if full_sync else [*criteria, domain.id_column > last_id],
                order_by=[domain.id_column],
                offset=offset if full_sync else 0,
                limit=batch_size,
            )
            rows = await self._with_retry(fetch, f"{domain.system_type} offset {offset}")
            if not rows:
                break

            try:
                counts = await self._write_batch(domain, context, rows)
            except Exception as e:
                logger.error(f"Sync {domain.system_type}: batch de {len(rows)} filas revertido: {e}")
                counts = _BatchCounts(errors=len(rows))

            progress.processed_items += len(rows)
            progress.created_items += counts.created
            progress.updated_items += counts.updated
            progress.errors += counts.errors
            offset += len(rows)
            last_id = rows[-1].id

            await self._check_circuit_breaker(domain, progress)

            if len(rows) < batch_size:
                break
            if self._throttle > 0:
                await asyncio.sleep(self._throttle)

    async def _check_circuit_breaker(self, domain: ReferenceDomain, progress: ReferenceSyncProgress) -> None:
        processed = progress.processed_items
        if processed < self._min_processed:
            return
        if progress.errors / processed <= self._error_rate:
            return
        error = CircuitBreakerOpenException(domain.system_type, progress.errors, processed, self._error_rate)
        logger.error(error.message)
        await self._telegram.send_message(f"🚨 <b>Circuit breaker</b>\n{html.escape(error.message)}")
        raise error

    async def _with_retry(self, operation: Callable[[], Awaitable[T]], label: str) -> T:
        """Reintenta una lectura legacy con backoff exponencial (base * 2^intento)."""
        for attempt in range(self._retry_attempts):
            try:
                return await operation()
            except Exception as e:
                if attempt == self._retry_attempts - 1:
                    raise
                delay = self._retry_base * 2 ** attempt
                logger.warning(
                    f"Lectura legacy fallida ({label}), intento {attempt + 1}/{self._retry_attempts}; "
                    f"reintentando en {delay:g}s: {e}"
                )
                await asyncio.sleep(delay)
        raise RuntimeError("retry_attempts debe ser >= 1")

    async def _write_batch(
        self,
        domain: ReferenceDomain,
        context: _SyncContext,
        rows: Sequence[Any],
    ) -> _BatchCounts:
        counts = _BatchCounts()
        async with self._session_factory() as db:
            async with db.begin():
                ledger = SystemSyncLogRepository(db)
                entities = EntityRepository(db)
                existing = await ledger.get_by_legacy_ids(domain.system_type, [r.id for r in rows])

                for row in rows:
                    try:
                        async with db.begin_nested():
                            created = await self._write_record(domain, context, ledger, entities, row, existing.get(row.id))
                    except Exception as e:
                        logger.warning(f"Sync {domain.system_type}: error en fila legacy {row.id}: {e}")
                        counts.errors += 1
                        if row.id not in existing:
                            await ledger.record_failed(domain.system_type, row.id, str(e))
                        continue
                    if created:
                        counts.created += 1
                    else:
                        counts.updated += 1
        return counts

    async def _write_record(
        self,
        domain: ReferenceDomain,
        context: _SyncContext,
        ledger: SystemSyncLogRepository,
        entities: EntityRepository,
        row: Any,
        log: Optional[Any],
    ) -> bool:
        payload = build_payload(
            domain,
            row,
            urls=self._urls,
            lookups=context.lookups,
            relation_maps=context.relation_maps,
            related_workspace_ids=context.related_workspace_ids,
        )

        if log is not None and log.status == STATUS_COMPLETED and log.entity_id:
            await entities.update_fields(
                log.entity_id, title=payload.title, status=payload.status, data=payload.data
            )
            await ledger.touch(log.id)
            return False

        custom_id = natural_key(domain.prefix, row.id)
        values: Dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "custom_id": custom_id,
            "workspace_id": context.workspace_id,
            "title": payload.title,
            "status": payload.status,
            "data": payload.data,
            "comment_count": 0,
        }
        created_at = getattr(row, domain.created_at_attr, None) if domain.created_at_attr else None
        if created_at:
            values["created_at"] = created_at
            values["updated_at"] = getattr(row, "updated_at", None) or created_at

        entity_id = await entities.insert_if_absent(values)
        created = entity_id is not None
        if not created:
            entity_id = await entities.get_id_by_custom_id(custom_id)
            await entities.update_fields(entity_id, title=payload.title, status=payload.status, data=payload.data)

        if log is not None:
            await ledger.mark_completed(log.id, entity_id)
        else:
            await ledger.record_completed(domain.system_type, row.id, entity_id)
        return created

    # ==================== CRON ====================

    async def scheduled_sync(self, full_sync: bool = False) -> List[ReferenceSyncResult]:
        """
        Job programado: sincroniza todos los dominios en orden de dependencias
        y envía el resumen por Telegram. Un dominio fallido no detiene a los demas.
        """
        if not self._cron_enabled:
            logger.debug("Cron de referencia deshabilitado, se omite la corrida")
            return []

        self._last_cron_run_at = DateTimeUtils.now_utc()
        results: List[ReferenceSyncResult] = []
        failures: Dict[str, str] = {}
        for name in SYNC_ORDER:
            try:
                results.append(await self.sync(name, full_sync=full_sync))
            except Exception as e:
                failures[name] = str(e)

        if self._telegram.is_configured():
            await self._telegram.send_message(format_sync_summary(results, failures, full_sync=full_sync))
        return results

    async def scheduled_full_sync(self) -> List[ReferenceSyncResult]:
        return await self.scheduled_sync(full_sync=True)
