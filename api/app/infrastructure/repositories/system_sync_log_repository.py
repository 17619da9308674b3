"""
Ledger de sincronización de datos de referencia, clave (system_type, legacy_id).
"""
import uuid
from datetime import datetime
from typing import Dict, Iterable, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func

from app.infrastructure.database.insert_utils import insert_if_absent
from app.infrastructure.database.models import SystemSyncLogModel
from app.infrastructure.repositories.migration_log_repository import STATUS_COMPLETED, STATUS_FAILED


class SystemSyncLogRepository:
    """Gestiona la tabla system_sync_log."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_legacy_ids(self, system_type: str, legacy_ids: Iterable[int]) -> Dict[int, SystemSyncLogModel]:
        ids = list(legacy_ids)
        if not ids:
            return {}
        query = select(SystemSyncLogModel).where(
            SystemSyncLogModel.system_type == system_type,
            SystemSyncLogModel.legacy_id.in_(ids),
        )
        result = await self.db.execute(query)
        return {row.legacy_id: row for row in result.scalars().all()}

    async def get_entity_map(self, system_type: str) -> Dict[int, str]:
        """legacy_id -> entity_id de todas las filas completadas de un dominio."""
        query = select(SystemSyncLogModel.legacy_id, SystemSyncLogModel.entity_id).where(
            SystemSyncLogModel.system_type == system_type,
            SystemSyncLogModel.status == STATUS_COMPLETED,
        )
        result = await self.db.execute(query)
        return {legacy_id: entity_id for legacy_id, entity_id in result.all() if entity_id}

    async def record_completed(self, system_type: str, legacy_id: int, entity_id: str) -> bool:
        inserted = await insert_if_absent(
            self.db,
            SystemSyncLogModel,
            {
                "id": str(uuid.uuid4()),
                "system_type": system_type,
                "legacy_id": legacy_id,
                "entity_id": entity_id,
                "status": STATUS_COMPLETED,
            },
            conflict_columns=["system_type", "legacy_id"],
        )
        return inserted is not None

    async def mark_completed(self, log_id: str, entity_id: str) -> None:
        """Promueve una fila existente (p.ej. fallida) a completada."""
        await self.db.execute(
            update(SystemSyncLogModel)
            .where(SystemSyncLogModel.id == log_id)
            .values(status=STATUS_COMPLETED, entity_id=entity_id, error_message=None, synced_at=func.now())
        )

    async def touch(self, log_id: str) -> None:
        """Marca una fila completada como sincronizada ahora (actualización en sitio)."""
        await self.db.execute(
            update(SystemSyncLogModel).where(SystemSyncLogModel.id == log_id).values(synced_at=func.now())
        )

    async def record_failed(self, system_type: str, legacy_id: int, error_message: str) -> bool:
        inserted = await insert_if_absent(
            self.db,
            SystemSyncLogModel,
            {
                "id": str(uuid.uuid4()),
                "system_type": system_type,
                "legacy_id": legacy_id,
                "entity_id": None,
                "status": STATUS_FAILED,
                "error_message": error_message[:2000],
            },
            conflict_columns=["system_type", "legacy_id"],
        )
        return inserted is not None

    async def max_completed_legacy_id(self, system_type: str) -> int:
        query = select(func.max(SystemSyncLogModel.legacy_id)).where(
            SystemSyncLogModel.system_type == system_type,
            SystemSyncLogModel.status == STATUS_COMPLETED,
        )
        return int(await self.db.scalar(query) or 0)

    async def last_sync_time(self, system_type: str) -> Optional[datetime]:
        query = select(func.max(SystemSyncLogModel.synced_at)).where(
            SystemSyncLogModel.system_type == system_type,
            SystemSyncLogModel.status == STATUS_COMPLETED,
        )
        return await self.db.scalar(query)

    async def count_completed(self, system_type: str) -> int:
        query = select(func.count()).select_from(SystemSyncLogModel).where(
            SystemSyncLogModel.system_type == system_type,
            SystemSyncLogModel.status == STATUS_COMPLETED,
        )
        return int(await self.db.scalar(query) or 0)
