"""
Tipos puros para el mapeo legacy -> destino.

Los estados/categorías se definen como tablas declarativas (valor origen ->
valor destino): agregar un valor nuevo es un cambio de datos, no de código.
Se mantienen libres de I/O para poder testearlos fácilmente.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

Transform = Callable[[Any], Any]
Lookups = Mapping[str, Mapping[Any, Any]]


@dataclass(frozen=True)
class ValueMap:
    """
    Mapa declarativo valor origen -> valor destino.

    La clave se normaliza (str, strip, lower) antes de buscar; si no hay
    match o el valor es None se retorna `default`.
    """

    mapping: Mapping[str, str]
    default: str

    def map(self, value: Any) -> str:
        if value is None:
            return self.default
        key = str(value).strip().lower()
        return self.mapping.get(key, self.default)


@dataclass(frozen=True)
class Rule:
    """Regla ordenada: si predicate(row.attr) es verdadero, el resultado es `value`."""

    attr: str
    predicate: Callable[[Any], bool]
    value: str

    def matches(self, row: Any) -> bool:
        return bool(self.predicate(getattr(row, self.attr, None)))


@dataclass(frozen=True)
class StatusSpec:
    """
    Como derivar el estado destino de una fila legacy.

    Orden de resolución: rules -> lookup (tabla cargada en runtime) -> value_map -> default.
    """

    default: str
    source_attr: Optional[str] = None
    value_map: Optional[ValueMap] = None
    lookup: Optional[str] = None
    rules: tuple[Rule, ...] = ()

    def resolve(self, row: Any, lookups: Optional[Lookups] = None) -> str:
        for rule in self.rules:
            if rule.matches(row):
                return rule.value
        if self.source_attr is None:
            return self.default
        raw = getattr(row, self.source_attr, None)
        if self.lookup:
            return (lookups or {}).get(self.lookup, {}).get(raw) or self.default
        if self.value_map:
            return self.value_map.map(raw)
        return self.default


@dataclass(frozen=True)
class FieldMapping:
    """
    Define el mapeo de un atributo legacy a un campo del payload `data`.

    - source_attr: atributo del modelo legacy
    - target_field: id del campo en el workspace destino
    - lookup: nombre de una tabla de lookup (p.ej. categorías) a aplicar primero
    - transform: función opcional para transformar el valor antes de persistir
    - default: valor si el resultado es None
    """

    source_attr: str
    target_field: str
    transform: Optional[Transform] = None
    lookup: Optional[str] = None
    default: Any = None

    def extract(self, row: Any, lookups: Optional[Lookups] = None) -> Any:
        value = getattr(row, self.source_attr, None)
        if self.lookup:
            value = (lookups or {}).get(self.lookup, {}).get(value)
        if self.transform:
            value = self.transform(value)
        return self.default if value is None else value


@dataclass(frozen=True)
class RelationSpec:
    """
    Enlace a una entidad de otro dominio ya sincronizado.

    Si el id referenciado no está en el ledger del dominio relacionado, el
    campo queda en None y el registro igual se escribe.
    """

    target_field: str
    source_attr: str
    domain: str
    prefix: str


@dataclass(frozen=True)
class TitleSpec:
    """Título = atributos unidos por espacio, o fallback_attr, o '<label> #<id>'."""

    attrs: tuple[str, ...]
    label: str
    fallback_attr: Optional[str] = None

    def build(self, row: Any) -> str:
        parts = [str(getattr(row, a)).strip() for a in self.attrs if getattr(row, a, None)]
        title = " ".join(p for p in parts if p)
        if not title and self.fallback_attr:
            title = (getattr(row, self.fallback_attr, None) or "").strip()
        return title or f"{self.label} #{row.id}"


# ==================== TRANSFORMS ====================


def none_if_empty(value: Any) -> Any:
    """'' / 0 / None -> None (equivale a `valor || null`)."""
    return value if value else None


def to_number(value: Any) -> float:
    """Número o 0 (Decimal de MySQL incluido)."""
    if value in (None, ""):
        return 0
    try:
        return float(Decimal(str(value)))
    except (ArithmeticError, ValueError):
        return 0


def to_int_or_zero(value: Any) -> int:
    return int(value) if value else 0


def is_flag_set(value: Any) -> bool:
    return value == 1


@dataclass(frozen=True)
class Payload:
    """Resultado de transformar una fila de referencia."""

    title: str
    status: str
    data: dict[str, Any] = field(default_factory=dict)
