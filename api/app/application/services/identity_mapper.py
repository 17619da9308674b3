"""
Mapeo de identidades legacy -> cuentas del sistema activo.

Un empleado legacy es una fila de `manager` cuyo user_id apunta a una fila de
SS_customers (de donde sale el email). El match con las cuentas actuales es
por email sin distinguir mayusculas.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.infrastructure.legacy.repository import LegacyRepository
from app.infrastructure.repositories.user_repository import UserRepository


@dataclass
class IdentityMap:
    """
    Estructura con alcance de una corrida.

    - employee_map: customerID legacy del empleado -> id de cuenta
    - manager_map: id de manager legacy -> id de cuenta (para assignee)
    - system_user_id: autor de respaldo cuando no hay mapeo
    """

    employee_map: Dict[int, str] = field(default_factory=dict)
    manager_map: Dict[int, str] = field(default_factory=dict)
    system_user_id: Optional[str] = None
    unmapped_count: int = 0

    def resolve_assignee(self, manager_id: Optional[int]) -> Optional[str]:
        if not manager_id:
            return None
        return self.manager_map.get(manager_id)

    def resolve_author(self, customer_id: Optional[int]) -> Optional[str]:
        if customer_id and customer_id in self.employee_map:
            return self.employee_map[customer_id]
        return self.system_user_id

    def is_employee(self, customer_id: Optional[int]) -> bool:
        return bool(customer_id) and customer_id in self.employee_map


class IdentityMapper:
    """Construye el IdentityMap leyendo legacy y el directorio de cuentas."""

    SYSTEM_FIRST_NAME = "Legacy"
    SYSTEM_LAST_NAME = "System"

    def __init__(self, legacy: LegacyRepository, system_email: Optional[str] = None):
        self._legacy = legacy
        self._system_email = system_email or settings.LEGACY_SYSTEM_EMAIL

    async def build_mapping(self, db: AsyncSession, *, ensure_system_user: bool = True) -> IdentityMap:
        """
        Construye el mapeo de empleados y managers.

        Args:
            db: Sesión del destino
            ensure_system_user: si False no escribe nada (dry-run / preview);
                se reutiliza la cuenta de sistema solo si ya existe.

        Returns:
            IdentityMap
        """
        managers = await self._legacy.get_all_managers()
        customers = await self._legacy.get_customers_by_ids(m.user_id for m in managers)

        users = await UserRepository(db).get_all()
        user_by_email = {u.email.lower(): u.id for u in users if u.email}

        identity = IdentityMap()
        for manager in managers:
            customer = customers.get(manager.user_id)
            email = (customer.email or "").strip().lower() if customer else ""
            account_id = user_by_email.get(email) if email else None
            if account_id:
                identity.employee_map[customer.id] = account_id
            else:
                identity.unmapped_count += 1

        # Un manager es mapeable solo si su empleado lo es
        for manager in managers:
            account_id = identity.employee_map.get(manager.user_id)
            if account_id:
                identity.manager_map[manager.id] = account_id

        identity.system_user_id = await self._resolve_system_user(db, create=ensure_system_user)

        logger.info(
            f"Mapeo de identidades: {len(identity.employee_map)} empleados, "
            f"{len(identity.manager_map)} managers, {identity.unmapped_count} sin mapear"
        )
        return identity

    async def _resolve_system_user(self, db: AsyncSession, *, create: bool) -> Optional[str]:
        users = UserRepository(db)
        if not create:
            existing = await users.get_by_email(self._system_email)
            return existing.id if existing else None
        system_user = await users.ensure_disabled_user(
            self._system_email, self.SYSTEM_FIRST_NAME, self.SYSTEM_LAST_NAME
        )
        return system_user.id
