"""
Repositorio de workspaces.
"""
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.infrastructure.database.models import WorkspaceModel


class WorkspaceRepository:
    """Gestiona la tabla workspaces."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_prefix(self, prefix: str) -> Optional[WorkspaceModel]:
        result = await self.db.execute(select(WorkspaceModel).where(WorkspaceModel.prefix == prefix))
        return result.scalar_one_or_none()

    async def get_by_system_type(self, system_type: str) -> Optional[WorkspaceModel]:
        result = await self.db.execute(
            select(WorkspaceModel).where(WorkspaceModel.system_type == system_type)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        name: str,
        icon: str,
        prefix: str,
        sections: List[Dict[str, Any]],
        system_type: Optional[str] = None,
        statuses: Optional[List[Dict[str, Any]]] = None,
    ) -> WorkspaceModel:
        workspace = WorkspaceModel(
            name=name,
            icon=icon,
            prefix=prefix,
            is_system=system_type is not None,
            system_type=system_type,
            sections=sections,
            statuses=statuses,
        )
        self.db.add(workspace)
        await self.db.flush()
        return workspace
