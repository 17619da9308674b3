"""
Casos de uso para la migración histórica de tickets legacy.

Características clave:
- Paginación estable por clave primaria (RID), batches estrictamente secuenciales.
- Un batch = una transacción; cada ticket dentro de un SAVEPOINT propio, de modo
  que un registro fallido no arrastra a los demas.
- El ledger (legacy_migration_log) se consulta ANTES de transformar: re-ejecutar
  sobre los mismos ids no crea nada.
- Cancelación cooperativa: stop() solo impide que arranque el siguiente batch.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.application.services.identity_mapper import IdentityMap, IdentityMapper
from app.application.services.migration_auditor import ValidationAuditor, ValidationReport
from app.application.services.ticket_transformer import transform_ticket
from app.core.config import settings
from app.infrastructure.database.models import WorkspaceModel
from app.infrastructure.legacy.models import LegacyAnswer, LegacyCustomer, LegacyRequest
from app.infrastructure.legacy.repository import LegacyRepository
from app.infrastructure.legacy.urls import LegacyUrlBuilder
from app.infrastructure.repositories.entity_repository import EntityRepository
from app.infrastructure.repositories.migration_log_repository import (
    MigrationLogRepository,
    STATUS_COMPLETED,
    STATUS_FAILED,
)
from app.infrastructure.repositories.workspace_repository import WorkspaceRepository
from app.shared.exceptions.domain import (
    LegacyUnavailableException,
    MigrationAlreadyRunningException,
    MigrationNotInitializedException,
)
from app.shared.utils.datetime_utils import DateTimeUtils

LEGACY_WORKSPACE_NAME = "Legacy CRM (Migración)"
LEGACY_WORKSPACE_ICON = "📦"
MISSING_IN_LEGACY_ERROR = "Ticket no encontrado en legacy"
LEGACY_WORKSPACE_SECTIONS: List[dict] = [
    {
        "id": "main",
        "name": "Información principal",
        "order": 0,
        "fields": [
            {"id": "legacyRequestId", "name": "Legacy RID", "type": "number"},
            {"id": "requestType", "name": "Tipo de ticket", "type": "text"},
            {"id": "legacyUrl", "name": "Enlace en CRM", "type": "url"},
        ],
    },
    {
        "id": "customer",
        "name": "Cliente",
        "order": 1,
        "fields": [
            {"id": "legacyCustomerId", "name": "Legacy Customer ID", "type": "number"},
            {"id": "customerName", "name": "Nombre del cliente", "type": "text"},
            {"id": "customerEmail", "name": "Email del cliente", "type": "text"},
            {"id": "customerPhone", "name": "Teléfono del cliente", "type": "text"},
        ],
    },
    {
        "id": "counterparty",
        "name": "Contraparte",
        "order": 2,
        "fields": [{"id": "counterpartyId", "name": "ID de contraparte", "type": "number"}],
    },
]


@dataclass
class MigrationProgress:
    total: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    comments: int = 0
    current_batch: int = 0
    total_batches: int = 0
    failed_batches: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    is_running: bool = False
    error: Optional[str] = None


@dataclass
class BatchResult:
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    comments_created: int = 0


@dataclass(frozen=True)
class _RecordOutcome:
    created: bool
    comments: int


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class LegacyMigrationUseCases:
    """
    Orquestador de la migración completa.

    El estado de la corrida pertenece a esta instancia (una por proceso, creada
    al startup) y se expone solo mediante copias.
    """

    def __init__(
        self,
        legacy: LegacyRepository,
        session_factory: async_sessionmaker,
        *,
        workspace_prefix: Optional[str] = None,
        urls: Optional[LegacyUrlBuilder] = None,
    ):
        self._legacy = legacy
        self._session_factory = session_factory
        self._prefix = workspace_prefix or settings.LEGACY_WORKSPACE_PREFIX
        self._urls = urls or LegacyUrlBuilder()
        self._mapper = IdentityMapper(legacy)
        self._auditor = ValidationAuditor(legacy, session_factory, self._prefix)

        self._progress = MigrationProgress()
        self._stop_requested = False
        self._retrying = False
        self._task: Optional[asyncio.Task] = None
        self._identity: Optional[IdentityMap] = None
        self._workspace_id: Optional[str] = None

    @property
    def workspace_prefix(self) -> str:
        return self._prefix

    @property
    def legacy(self) -> LegacyRepository:
        return self._legacy

    @property
    def session_factory(self) -> async_sessionmaker:
        return self._session_factory

    @property
    def mapper(self) -> IdentityMapper:
        return self._mapper

    def is_running(self) -> bool:
        return self._progress.is_running or self._retrying

    def get_progress(self) -> MigrationProgress:
        """Copia defensiva del progreso actual."""
        return replace(self._progress)

    # ==================== CICLO DE VIDA ====================

    async def start(
        self,
        batch_size: Optional[int] = None,
        max_requests: Optional[int] = None,
        dry_run: bool = False,
    ) -> Dict[str, str]:
        """
        Inicia la migración en background.

        Las precondiciones se validan antes de lanzar la tarea: si ya hay una
        corrida activa o legacy no está disponible se lanza una excepción.

        Args:
            batch_size: Tickets por batch
            max_requests: Tope opcional de tickets
            dry_run: Solo conteos; no escribe en destino

        Returns:
            Dict con mensaje descriptivo
        """
        if self.is_running():
            raise MigrationAlreadyRunningException()
        if not self._legacy.is_available():
            raise LegacyUnavailableException()

        batch_size = batch_size or settings.MIGRATION_BATCH_SIZE
        self._progress = MigrationProgress(is_running=True, started_at=DateTimeUtils.now_utc())
        self._stop_requested = False

        try:
            total_count = await self._legacy.count_requests()
            to_process = min(total_count, max_requests) if max_requests else total_count
            self._progress.total = to_process
            self._progress.total_batches = math.ceil(to_process / batch_size) if to_process else 0

            if dry_run:
                async with self._session_factory() as db:
                    identity = await self._mapper.build_mapping(db, ensure_system_user=False)
                self._finish_run()
                message = (
                    f"Dry run: {to_process} tickets para migrar, "
                    f"{len(identity.employee_map)} empleados mapeados"
                )
                logger.info(message)
                return {"message": message}

            await self.prepare()
        except Exception as e:
            self._finish_run(error=str(e))
            raise

        self._task = asyncio.create_task(self._run_loop(batch_size, to_process))
        message = f"Migración iniciada: {to_process} tickets, batch {batch_size}"
        logger.info(message)
        return {"message": message}

    def stop(self) -> Dict[str, str]:
        """Solicita detener la corrida al terminar el batch actual."""
        if not self._progress.is_running:
            return {"message": "La migración no está en ejecución"}
        self._stop_requested = True
        logger.warning("Deteniendo la migración después del batch actual...")
        return {"message": "Deteniendo la migración después del batch actual..."}

    async def wait_for_completion(self) -> MigrationProgress:
        """Espera a que termine la tarea en background (CLI y tests)."""
        if self._task is not None:
            await self._task
        return self.get_progress()

    def _finish_run(self, error: Optional[str] = None) -> None:
        self._progress.is_running = False
        self._progress.completed_at = DateTimeUtils.now_utc()
        if error:
            self._progress.error = error

    async def prepare(self) -> Tuple[IdentityMap, str]:
        """Construye el mapeo de identidades y asegura el workspace destino."""
        async with self._session_factory() as db:
            identity = await self._mapper.build_mapping(db)
            workspace = await self.ensure_legacy_workspace(db)
            await db.commit()
        self._identity = identity
        self._workspace_id = workspace.id
        return identity, workspace.id

    async def ensure_legacy_workspace(self, db: AsyncSession) -> WorkspaceModel:
        """Crea (o reutiliza) el workspace de tickets migrados."""
        workspaces = WorkspaceRepository(db)
        workspace = await workspaces.get_by_prefix(self._prefix)
        if workspace:
            return workspace
        workspace = await workspaces.create(
            name=LEGACY_WORKSPACE_NAME,
            icon=LEGACY_WORKSPACE_ICON,
            prefix=self._prefix,
            sections=LEGACY_WORKSPACE_SECTIONS,
        )
        logger.info(f"Workspace creado: {workspace.name} ({workspace.id})")
        return workspace

    async def _run_loop(self, batch_size: int, to_process: int) -> None:
        offset = 0
        try:
            while offset < to_process:
                if self._stop_requested:
                    logger.warning(f"Migración detenida por el usuario en offset {offset}")
                    break

                limit = min(batch_size, to_process - offset)
                self._progress.current_batch += 1
                try:
                    batch = await self._legacy.get_requests_batch(offset, limit)
                    if not batch:
                        break
                    result = await self.migrate_batch(batch)
                except Exception as e:
                    # El batch completo se revierte; se avanza igual (skip-and-continue)
                    logger.error(
                        f"Error en batch {self._progress.current_batch} (offset {offset}): {e}"
                    )
                    self._progress.failed += limit
                    self._progress.failed_batches += 1
                else:
                    self._progress.processed += result.processed
                    self._progress.skipped += result.skipped
                    self._progress.failed += result.failed
                    self._progress.comments += result.comments_created
                offset += limit

                logger.info(
                    f"Batch {self._progress.current_batch}/{self._progress.total_batches}: "
                    f"procesados={self._progress.processed}, omitidos={self._progress.skipped}, "
                    f"fallidos={self._progress.failed}"
                )

            self._finish_run()
            logger.success(
                f"Migración finalizada: {self._progress.processed} tickets, "
                f"{self._progress.comments} comentarios, {self._progress.failed} fallidos"
            )
        except Exception as e:
            logger.exception(f"Migración abortada: {e}")
            self._finish_run(error=str(e))

    # ==================== BATCH ====================

    async def migrate_batch(
        self,
        requests: Sequence[LegacyRequest],
        *,
        identity: Optional[IdentityMap] = None,
        workspace_id: Optional[str] = None,
        replace_failed: bool = False,
    ) -> BatchResult:
        """
        Migra un batch de tickets dentro de una transacción.

        Un error de un ticket se aisla con SAVEPOINT y queda en el ledger como
        'failed'; un error fuera de ese límite revierte el batch entero y se
        propaga al llamador.

        Con replace_failed las filas 'failed' del batch se borran dentro de la
        misma transacción y sus tickets se vuelven a migrar; si el batch se
        revierte, las filas fallidas siguen en el ledger.

        Returns:
            BatchResult con conteos del batch
        """
        identity = identity or self._identity
        workspace_id = workspace_id or self._workspace_id
        if identity is None or workspace_id is None:
            raise MigrationNotInitializedException()

        result = BatchResult()
        if not requests:
            return result

        async with self._session_factory() as db:
            async with db.begin():
                ledger = MigrationLogRepository(db)
                entities = EntityRepository(db)

                already = await ledger.get_by_legacy_ids(r.id for r in requests)
                if replace_failed:
                    failed_ids = [legacy_id for legacy_id, row in already.items() if row.status == STATUS_FAILED]
                    await ledger.delete_by_legacy_ids(failed_ids)
                    for legacy_id in failed_ids:
                        del already[legacy_id]
                to_migrate = [r for r in requests if r.id not in already]
                result.skipped = len(requests) - len(to_migrate)
                if not to_migrate:
                    return result

                answers_by_request = await self._legacy.get_answers_for_requests([r.id for r in to_migrate])
                customers = await self._legacy.get_customers_by_ids(r.customer_id for r in to_migrate)

                for request in to_migrate:
                    try:
                        async with db.begin_nested():
                            outcome = await self._migrate_record(
                                entities,
                                ledger,
                                request,
                                answers_by_request.get(request.id, []),
                                customers.get(request.customer_id),
                                identity,
                                workspace_id,
                            )
                    except Exception as e:
                        logger.warning(f"Error migrando ticket {request.id}: {e}")
                        await ledger.record_failed(request.id, str(e))
                        result.failed += 1
                        continue

                    if outcome.created:
                        result.processed += 1
                        result.comments_created += outcome.comments
                    else:
                        result.skipped += 1

        return result

    async def _migrate_record(
        self,
        entities: EntityRepository,
        ledger: MigrationLogRepository,
        request: LegacyRequest,
        answers: Sequence[LegacyAnswer],
        customer: Optional[LegacyCustomer],
        identity: IdentityMap,
        workspace_id: str,
    ) -> _RecordOutcome:
        draft = transform_ticket(
            request,
            answers,
            customer,
            identity,
            workspace_id=workspace_id,
            prefix=self._prefix,
            urls=self._urls,
        )

        inserted_id = await entities.insert_if_absent(draft.entity_values)
        if inserted_id is None:
            # La clave natural ya existe (carrera con otra escritura): se registra sin hijos
            existing_id = await entities.get_id_by_custom_id(draft.custom_id)
            await ledger.record_completed(request.id, existing_id, 0)
            return _RecordOutcome(created=False, comments=0)

        for comment in draft.comments:
            await entities.add_comment(draft.entity_id, comment.author_id, comment.content, comment.created_at)

        await ledger.record_completed(request.id, draft.entity_id, len(draft.comments))
        return _RecordOutcome(created=True, comments=len(draft.comments))

    # ==================== OPERACIONES AUXILIARES ====================

    async def retry_failed(self) -> Dict[str, Any]:
        """
        Reintenta los tickets con estado 'failed' en el ledger.

        Los vuelve a leer de legacy por id en bloques y los pasa por el mismo
        camino por registro; la fila fallida de cada ticket se reemplaza dentro
        de la transacción del bloque. Si un bloque se revierte, o un ticket ya
        no existe en legacy, su fila 'failed' se conserva. Es seguro llamarlo
        varias veces.
        """
        if self.is_running():
            raise MigrationAlreadyRunningException()
        if not self._legacy.is_available():
            raise LegacyUnavailableException()

        self._retrying = True
        try:
            await self.prepare()

            async with self._session_factory() as db:
                failed_ids = [row.legacy_request_id for row in await MigrationLogRepository(db).get_failed()]
            if not failed_ids:
                return {"message": "No hay tickets fallidos", "retried": 0, "processed": 0, "failed": 0}

            totals = BatchResult()
            for chunk in _chunks(failed_ids, settings.MIGRATION_RETRY_CHUNK_SIZE):
                requests = await self._legacy.get_requests_by_ids(chunk)
                found = {r.id for r in requests}
                missing = [legacy_id for legacy_id in chunk if legacy_id not in found]
                if missing:
                    await self._mark_missing(missing)
                    totals.failed += len(missing)
                if not requests:
                    continue
                try:
                    result = await self.migrate_batch(requests, replace_failed=True)
                except Exception as e:
                    logger.error(f"Reintento: error en bloque de {len(requests)} tickets: {e}")
                    totals.failed += len(requests)
                    continue
                totals.processed += result.processed
                totals.failed += result.failed
        finally:
            self._retrying = False

        logger.info(
            f"Reintento: {len(failed_ids)} tickets, {totals.processed} migrados, {totals.failed} fallidos"
        )
        return {
            "message": f"Reintento completado: {totals.processed} de {len(failed_ids)}",
            "retried": len(failed_ids),
            "processed": totals.processed,
            "failed": totals.failed,
        }

    async def _mark_missing(self, legacy_ids: Sequence[int]) -> None:
        logger.warning(f"Reintento: {len(legacy_ids)} tickets ya no existen en legacy: {list(legacy_ids)}")
        async with self._session_factory() as db:
            async with db.begin():
                await MigrationLogRepository(db).set_error_message(legacy_ids, MISSING_IN_LEGACY_ERROR)

    async def validate(self) -> ValidationReport:
        return await self._auditor.validate()

    async def get_preview(self) -> Dict[str, Any]:
        """Conteos previos a la migración (no escribe nada)."""
        available = self._legacy.is_available()
        legacy_requests = await self._legacy.count_requests() if available else 0
        legacy_answers = await self._legacy.count_answers() if available else 0

        async with self._session_factory() as db:
            migrated = await MigrationLogRepository(db).count_by_status(STATUS_COMPLETED)
            workspace = await WorkspaceRepository(db).get_by_prefix(self._prefix)
            identity = (
                await self._mapper.build_mapping(db, ensure_system_user=False)
                if available
                else IdentityMap()
            )

        return {
            "legacy_available": available,
            "legacy_requests_count": legacy_requests,
            "legacy_answers_count": legacy_answers,
            "already_migrated_count": migrated,
            "remaining_count": max(0, legacy_requests - migrated),
            "employee_mapping_count": len(identity.employee_map),
            "unmapped_employee_count": identity.unmapped_count,
            "workspace_exists": workspace is not None,
            "workspace_id": workspace.id if workspace else None,
        }

    async def get_migration_log(
        self,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        async with self._session_factory() as db:
            items, total = await MigrationLogRepository(db).list_entries(status=status, limit=limit, offset=offset)
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    async def update_assignees(self) -> Dict[str, int]:
        """
        Completa el responsable de entidades migradas que aún no lo tienen,
        con un mapeo de identidades recien construido.
        """
        if not self._legacy.is_available():
            raise LegacyUnavailableException()

        updated = 0
        async with self._session_factory() as db:
            identity = await self._mapper.build_mapping(db)
            if not identity.manager_map:
                await db.commit()
                return {"updated": 0, "total": 0}

            entries = await MigrationLogRepository(db).get_completed()
            entities = EntityRepository(db)
            for chunk in _chunks(entries, settings.MIGRATION_BATCH_SIZE):
                requests = await self._legacy.get_requests_by_ids([e.legacy_request_id for e in chunk])
                by_id = {r.id: r for r in requests}
                for entry in chunk:
                    request = by_id.get(entry.legacy_request_id)
                    assignee_id = identity.resolve_assignee(request.manager_id) if request else None
                    if not assignee_id or not entry.entity_id:
                        continue
                    if await entities.set_assignee_if_empty(entry.entity_id, assignee_id):
                        updated += 1
            await db.commit()

        logger.info(f"Responsables actualizados: {updated} de {len(entries)}")
        return {"updated": updated, "total": len(entries)}
