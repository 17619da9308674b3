"""
Auditoria de la migración: cobertura y chequeo de integridad por muestreo.

Las discrepancias se reportan como métricas, nunca como excepciones.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.infrastructure.legacy.repository import LegacyRepository
from app.infrastructure.repositories.entity_repository import EntityRepository
from app.infrastructure.repositories.migration_log_repository import (
    MigrationLogRepository,
    STATUS_COMPLETED,
    STATUS_FAILED,
)
from app.infrastructure.repositories.workspace_repository import WorkspaceRepository

SAMPLE_SIZE = 100


def compute_coverage(completed: int, source_total: int) -> int:
    """
    Porcentaje de cobertura redondeado (mitad hacia arriba) y acotado a [0, 100].
    Sin filas en origen la cobertura es 0.
    """
    if source_total <= 0:
        return 0
    percent = math.floor(completed / source_total * 100 + 0.5)
    return max(0, min(100, percent))


@dataclass(frozen=True)
class ValidationReport:
    entities_created: int
    legacy_total: int
    migration_log_completed: int
    migration_log_failed: int
    coverage_percent: int
    sample_size: int
    integrity_errors: int


class ValidationAuditor:
    """Compara destino contra origen y verifica una muestra del ledger."""

    def __init__(self, legacy: LegacyRepository, session_factory: async_sessionmaker, workspace_prefix: str):
        self._legacy = legacy
        self._session_factory = session_factory
        self._prefix = workspace_prefix

    async def validate(self) -> ValidationReport:
        legacy_total = await self._legacy.count_requests()

        async with self._session_factory() as db:
            workspace = await WorkspaceRepository(db).get_by_prefix(self._prefix)
            entities = EntityRepository(db)
            entities_created = await entities.count_by_workspace(workspace.id) if workspace else 0

            ledger = MigrationLogRepository(db)
            completed = await ledger.count_by_status(STATUS_COMPLETED)
            failed = await ledger.count_by_status(STATUS_FAILED)

            sample = await ledger.sample_completed(min(SAMPLE_SIZE, completed)) if completed else []
            existing = await entities.existing_ids(row.entity_id for row in sample)
            integrity_errors = sum(1 for row in sample if row.entity_id not in existing)

        report = ValidationReport(
            entities_created=entities_created,
            legacy_total=legacy_total,
            migration_log_completed=completed,
            migration_log_failed=failed,
            coverage_percent=compute_coverage(completed, legacy_total),
            sample_size=len(sample),
            integrity_errors=integrity_errors,
        )
        if integrity_errors:
            logger.warning(f"Validación: {integrity_errors}/{len(sample)} entidades del ledger no existen")
        logger.info(
            f"Validación: cobertura {report.coverage_percent}% "
            f"({completed}/{legacy_total}), fallidos={failed}"
        )
        return report
