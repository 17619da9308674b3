"""
Ledger de migración de tickets legacy.

Es la única fuente de verdad para idempotencia y reanudación: la existencia
de una fila para un id legacy se consulta ANTES de transformar.
"""
import uuid
from typing import Dict, Iterable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func, update

from app.infrastructure.database.insert_utils import insert_if_absent
from app.infrastructure.database.models import LegacyMigrationLogModel

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


class MigrationLogRepository:
    """Gestiona la tabla legacy_migration_log."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_legacy_ids(self, legacy_ids: Iterable[int]) -> Dict[int, LegacyMigrationLogModel]:
        """Lookup en bloque de las filas existentes para un batch."""
        ids = list(legacy_ids)
        if not ids:
            return {}
        query = select(LegacyMigrationLogModel).where(LegacyMigrationLogModel.legacy_request_id.in_(ids))
        result = await self.db.execute(query)
        return {row.legacy_request_id: row for row in result.scalars().all()}

    async def record_completed(self, legacy_id: int, entity_id: str, comments_count: int) -> bool:
        inserted = await insert_if_absent(
            self.db,
            LegacyMigrationLogModel,
            {
                "id": str(uuid.uuid4()),
                "legacy_request_id": legacy_id,
                "entity_id": entity_id,
                "comments_count": comments_count,
                "status": STATUS_COMPLETED,
            },
            conflict_columns=["legacy_request_id"],
        )
        return inserted is not None

    async def record_failed(self, legacy_id: int, error_message: str) -> bool:
        inserted = await insert_if_absent(
            self.db,
            LegacyMigrationLogModel,
            {
                "id": str(uuid.uuid4()),
                "legacy_request_id": legacy_id,
                "entity_id": None,
                "comments_count": 0,
                "status": STATUS_FAILED,
                "error_message": error_message[:2000],
            },
            conflict_columns=["legacy_request_id"],
        )
        return inserted is not None

    async def get_failed(self) -> List[LegacyMigrationLogModel]:
        query = (
            select(LegacyMigrationLogModel)
            .where(LegacyMigrationLogModel.status == STATUS_FAILED)
            .order_by(LegacyMigrationLogModel.legacy_request_id)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def delete_by_legacy_ids(self, legacy_ids: Iterable[int]) -> int:
        ids = list(legacy_ids)
        if not ids:
            return 0
        result = await self.db.execute(
            delete(LegacyMigrationLogModel).where(LegacyMigrationLogModel.legacy_request_id.in_(ids))
        )
        return result.rowcount or 0

    async def set_error_message(self, legacy_ids: Iterable[int], error_message: str) -> int:
        """Reescribe el error de filas fallidas existentes (no crea filas)."""
        ids = list(legacy_ids)
        if not ids:
            return 0
        result = await self.db.execute(
            update(LegacyMigrationLogModel)
            .where(
                LegacyMigrationLogModel.legacy_request_id.in_(ids),
                LegacyMigrationLogModel.status == STATUS_FAILED,
            )
            .values(error_message=error_message[:2000])
        )
        return result.rowcount or 0

    async def count_by_status(self, status: str) -> int:
        query = (
            select(func.count())
            .select_from(LegacyMigrationLogModel)
            .where(LegacyMigrationLogModel.status == status)
        )
        return int(await self.db.scalar(query) or 0)

    async def list_entries(
        self,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[List[LegacyMigrationLogModel], int]:
        """
        Lista paginada del ledger (más recientes primero).

        Returns:
            (filas, total que cumple el filtro)
        """
        criteria = []
        if status:
            criteria.append(LegacyMigrationLogModel.status == status)
        total = await self.db.scalar(
            select(func.count()).select_from(LegacyMigrationLogModel).where(*criteria)
        )
        query = (
            select(LegacyMigrationLogModel)
            .where(*criteria)
            .order_by(LegacyMigrationLogModel.migrated_at.desc(), LegacyMigrationLogModel.legacy_request_id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), int(total or 0)

    async def sample_completed(self, size: int) -> List[LegacyMigrationLogModel]:
        """Muestra aleatoria de filas completadas (para auditoría)."""
        query = (
            select(LegacyMigrationLogModel)
            .where(LegacyMigrationLogModel.status == STATUS_COMPLETED)
            .order_by(func.random())
            .limit(size)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_completed(self) -> List[LegacyMigrationLogModel]:
        query = (
            select(LegacyMigrationLogModel)
            .where(LegacyMigrationLogModel.status == STATUS_COMPLETED)
            .order_by(LegacyMigrationLogModel.legacy_request_id)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())
