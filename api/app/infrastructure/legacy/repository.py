"""
Repositorio de solo lectura sobre la base de datos legacy.

Cada operación abre su propia sesión corta: las lecturas legacy nunca
participan de la transacción del destino.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from loguru import logger
from sqlalchemy import and_, func, or_, select, text
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.infrastructure.legacy.models import (
    LegacyAnswer,
    LegacyCategory,
    LegacyCustomer,
    LegacyDealStage,
    LegacyManager,
    LegacyRequest,
)


def legacy_now() -> datetime:
    """Hora actual en el reloj de la base legacy (naive, hora local)."""
    return datetime.now()


class LegacyRepository:
    """
    Acceso de lectura a tickets, respuestas, clientes, empleados y
    dominios de referencia del CRM legacy.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker]):
        self._session_factory = session_factory
        self._available = session_factory is not None

    def is_available(self) -> bool:
        """Indica si hay una conexión legacy configurada y respondiendo."""
        return self._session_factory is not None and self._available

    async def check_connection(self) -> bool:
        """
        Ejecuta un SELECT 1 contra legacy y actualiza la disponibilidad.

        Returns:
            bool: True si la base legacy respondio
        """
        if self._session_factory is None:
            self._available = False
            return False
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            self._available = True
        except Exception as e:
            logger.warning(f"Base legacy no disponible: {e}")
            self._available = False
        return self._available

    async def _scalars(self, query) -> List[Any]:
        if not self.is_available():
            return []
        async with self._session_factory() as session:
            result = await session.scalars(query)
            return list(result.all())

    async def _scalar(self, query) -> Any:
        if not self.is_available():
            return 0
        async with self._session_factory() as session:
            return await session.scalar(query)

    # ==================== TICKETS ====================

    async def get_requests_batch(self, offset: int, limit: int) -> List[LegacyRequest]:
        """Página estable por clave primaria (RID ascendente)."""
        query = select(LegacyRequest).order_by(LegacyRequest.id).offset(offset).limit(limit)
        return await self._scalars(query)

    async def count_requests(self) -> int:
        return int(await self._scalar(select(func.count()).select_from(LegacyRequest)) or 0)

    async def count_answers(self) -> int:
        return int(await self._scalar(select(func.count()).select_from(LegacyAnswer)) or 0)

    async def get_requests_by_ids(self, ids: Sequence[int]) -> List[LegacyRequest]:
        if not ids:
            return []
        query = select(LegacyRequest).where(LegacyRequest.id.in_(list(ids))).order_by(LegacyRequest.id)
        return await self._scalars(query)

    async def get_requests_modified_since(
        self,
        since: datetime,
        limit: int = 500,
        after_id: Optional[int] = None,
    ) -> List[LegacyRequest]:
        """
        Tickets con update_date > since, ordenados por (fecha de modificación, id).

        Con after_id se continúa una página llena: se incluyen también los
        tickets con update_date == since e id > after_id.
        """
        modified = LegacyRequest.updated_at > since
        if after_id is not None:
            modified = or_(modified, and_(LegacyRequest.updated_at == since, LegacyRequest.id > after_id))
        query = (
            select(LegacyRequest)
            .where(modified)
            .order_by(LegacyRequest.updated_at, LegacyRequest.id)
            .limit(limit)
        )
        return await self._scalars(query)

    async def get_answers_for_requests(self, request_ids: Sequence[int]) -> Dict[int, List[LegacyAnswer]]:
        """
        Lee en un solo query las respuestas de todo un batch.

        Returns:
            Dict RID -> respuestas ordenadas por add_date
        """
        grouped: Dict[int, List[LegacyAnswer]] = defaultdict(list)
        if not request_ids:
            return grouped
        query = (
            select(LegacyAnswer)
            .where(LegacyAnswer.request_id.in_(list(request_ids)))
            .order_by(LegacyAnswer.created_at, LegacyAnswer.id)
        )
        for answer in await self._scalars(query):
            grouped[answer.request_id].append(answer)
        return grouped

    async def get_answers_since(self, since: datetime, request_ids: Sequence[int]) -> List[LegacyAnswer]:
        if not request_ids:
            return []
        query = (
            select(LegacyAnswer)
            .where(LegacyAnswer.request_id.in_(list(request_ids)), LegacyAnswer.created_at > since)
            .order_by(LegacyAnswer.created_at, LegacyAnswer.id)
        )
        return await self._scalars(query)

    # ==================== PERSONAS ====================

    async def get_customers_by_ids(self, customer_ids: Iterable[int]) -> Dict[int, LegacyCustomer]:
        ids = sorted({cid for cid in customer_ids if cid})
        if not ids:
            return {}
        query = select(LegacyCustomer).where(LegacyCustomer.id.in_(ids))
        return {c.id: c for c in await self._scalars(query)}

    async def get_all_managers(self) -> List[LegacyManager]:
        return await self._scalars(select(LegacyManager).order_by(LegacyManager.id))

    # ==================== REFERENCIA (genérico) ====================

    async def count_rows(self, model, criteria: Sequence[Any] = ()) -> int:
        query = select(func.count()).select_from(model).where(*criteria)
        return int(await self._scalar(query) or 0)

    async def get_rows_page(
        self,
        model,
        *,
        criteria: Sequence[Any] = (),
        order_by: Sequence[Any],
        offset: int,
        limit: int,
    ) -> List[Any]:
        """Página genérica para dominios de referencia."""
        query = select(model).where(*criteria).order_by(*order_by).offset(offset).limit(limit)
        return await self._scalars(query)

    async def get_active_categories(self) -> List[LegacyCategory]:
        query = (
            select(LegacyCategory)
            .where(LegacyCategory.is_active == 1)
            .order_by(LegacyCategory.sort_order, LegacyCategory.name)
        )
        return await self._scalars(query)

    async def get_deal_stages(self) -> List[LegacyDealStage]:
        query = select(LegacyDealStage).order_by(LegacyDealStage.sort_order, LegacyDealStage.id)
        return await self._scalars(query)
