"""
INSERT ... ON CONFLICT DO NOTHING portable (PostgreSQL y SQLite).

Se usa para escribir entidades y filas de ledger con semántica
"insertar si no existe" por clave natural.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from sqlalchemy import and_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def insert_if_absent(
    db: AsyncSession,
    model,
    values: dict[str, Any],
    *,
    conflict_columns: Sequence[str],
) -> Optional[Any]:
    """
    Inserta una fila salvo que ya exista otra con las mismas conflict_columns.

    Returns:
        El id insertado, o None si la fila ya existia.
    """
    table = model.__table__
    dialect_name = db.get_bind().dialect.name
    insert_fn = _DIALECT_INSERTS.get(dialect_name)

    if insert_fn is not None:
        stmt = (
            insert_fn(table)
            .values(**values)
            .on_conflict_do_nothing(index_elements=list(conflict_columns))
            .returning(table.c.id)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    # Otros motores: check-then-insert dentro de la misma transacción
    existing = await db.scalar(
        select(table.c.id).where(and_(*[table.c[col] == values[col] for col in conflict_columns]))
    )
    if existing is not None:
        return None
    await db.execute(table.insert().values(**values))
    return values.get("id")
