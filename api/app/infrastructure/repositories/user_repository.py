"""
Repositorio del directorio de cuentas del sistema activo.
"""
import uuid
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from loguru import logger

from app.infrastructure.database.insert_utils import insert_if_absent
from app.infrastructure.database.models import UserModel


class UserRepository:
    """
    Lecturas por email y alta de cuentas de sistema.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_all(self) -> List[UserModel]:
        result = await self.db.execute(select(UserModel))
        return list(result.scalars().all())

    async def get_by_email(self, email: str) -> Optional[UserModel]:
        """Busca una cuenta por email sin distinguir mayusculas."""
        query = select(UserModel).where(func.lower(UserModel.email) == email.lower())
        result = await self.db.execute(query)
        return result.scalars().first()

    async def ensure_disabled_user(self, email: str, first_name: str, last_name: str) -> UserModel:
        """
        Retorna la cuenta desactivada con ese email, creandola si no existe.
        La cuenta no tiene credenciales utilizables.

        Returns:
            UserModel: Cuenta existente o recien creada
        """
        existing = await self.get_by_email(email)
        if existing:
            return existing

        created = await insert_if_absent(
            self.db,
            UserModel,
            {
                "id": str(uuid.uuid4()),
                "email": email.lower(),
                "first_name": first_name,
                "last_name": last_name,
                "role": "employee",
                "is_active": False,
                # Marcador no verificable: la cuenta no admite login
                "password_hash": f"!disabled-{uuid.uuid4()}",
            },
            conflict_columns=["email"],
        )
        if created:
            logger.info(f"Cuenta de sistema creada: {email}")
        return await self.get_by_email(email)
