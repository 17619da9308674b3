"""
Repositorio de entidades y comentarios del sistema activo.
"""
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Set
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func

from app.infrastructure.database.insert_utils import insert_if_absent
from app.infrastructure.database.models import EntityModel, CommentModel


class EntityRepository:
    """
    Escrituras de entidades por clave natural (custom_id) y de sus comentarios.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert_if_absent(self, values: Dict[str, Any]) -> Optional[str]:
        """
        Inserta la entidad salvo que ya exista su custom_id.

        Returns:
            id de la entidad creada, o None si el custom_id ya existia
        """
        return await insert_if_absent(self.db, EntityModel, values, conflict_columns=["custom_id"])

    async def get_id_by_custom_id(self, custom_id: str) -> Optional[str]:
        return await self.db.scalar(select(EntityModel.id).where(EntityModel.custom_id == custom_id))

    async def update_fields(self, entity_id: str, **fields: Any) -> None:
        await self.db.execute(update(EntityModel).where(EntityModel.id == entity_id).values(**fields))

    async def set_assignee_if_empty(self, entity_id: str, assignee_id: str) -> bool:
        """Asigna responsable solo si la entidad aún no tiene uno."""
        result = await self.db.execute(
            update(EntityModel)
            .where(EntityModel.id == entity_id, EntityModel.assignee_id.is_(None))
            .values(assignee_id=assignee_id)
        )
        return (result.rowcount or 0) > 0

    async def existing_ids(self, entity_ids: Iterable[str]) -> Set[str]:
        ids = [eid for eid in entity_ids if eid]
        if not ids:
            return set()
        result = await self.db.execute(select(EntityModel.id).where(EntityModel.id.in_(ids)))
        return set(result.scalars().all())

    async def count_by_workspace(self, workspace_id: str) -> int:
        query = select(func.count()).select_from(EntityModel).where(EntityModel.workspace_id == workspace_id)
        return int(await self.db.scalar(query) or 0)

    # ==================== COMENTARIOS ====================

    async def add_comment(self, entity_id: str, author_id: str, content: str, created_at: datetime) -> str:
        comment_id = str(uuid.uuid4())
        self.db.add(
            CommentModel(
                id=comment_id,
                entity_id=entity_id,
                author_id=author_id,
                content=content,
                created_at=created_at,
                updated_at=created_at,
            )
        )
        await self.db.flush()
        return comment_id

    async def comment_exists(self, entity_id: str, created_at: datetime) -> bool:
        """Las respuestas legacy no tienen id natural: se deduplican por (entidad, fecha)."""
        query = (
            select(CommentModel.id)
            .where(CommentModel.entity_id == entity_id, CommentModel.created_at == created_at)
            .limit(1)
        )
        return (await self.db.scalar(query)) is not None

    async def count_comments(self, entity_id: str) -> int:
        query = select(func.count()).select_from(CommentModel).where(CommentModel.entity_id == entity_id)
        return int(await self.db.scalar(query) or 0)
