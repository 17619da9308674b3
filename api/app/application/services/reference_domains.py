"""
Configuración declarativa de los dominios de referencia (legacy -> workspaces).

Aquí se controla, por dominio:
- tabla origen legacy y filtro base
- workspace destino (nombre, prefijo, esquema de campos)
- mapeos de campos, estados y relaciones con otros dominios

Este módulo no realiza I/O: solo define configuración.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from app.application.services.value_maps import (
    FieldMapping,
    Lookups,
    Payload,
    RelationSpec,
    Rule,
    StatusSpec,
    TitleSpec,
    ValueMap,
    is_flag_set,
    none_if_empty,
    to_int_or_zero,
    to_number,
)
from app.infrastructure.legacy.models import (
    LegacyCounterparty,
    LegacyCustomer,
    LegacyDeal,
    LegacyProduct,
)
from app.infrastructure.legacy.urls import LegacyUrlBuilder

COUNTERPARTIES = "counterparties"
CONTACTS = "contacts"
PRODUCTS = "products"
DEALS = "deals"

INCREMENTAL_KEYSET = "keyset"
INCREMENTAL_UPDATED_SINCE = "updated_since"

LOOKUP_CATEGORIES = "categories"
LOOKUP_DEAL_STAGES = "deal_stages"


def _legacy_section(order: int, url_label: str = "Enlace en CRM", extra: Sequence[dict] = ()) -> dict:
    return {
        "id": "legacy",
        "name": "Legacy CRM",
        "order": order,
        "fields": [
            {"id": "legacyId", "name": "Legacy ID", "type": "number", "system": True},
            *extra,
            {"id": "legacyUrl", "name": url_label, "type": "url", "system": True},
        ],
    }


COUNTERPARTY_SECTIONS: List[dict] = [
    {
        "id": "main",
        "name": "Información principal",
        "order": 0,
        "fields": [
            {"id": "inn", "name": "INN", "type": "text", "system": True},
            {"id": "kpp", "name": "KPP", "type": "text", "system": True},
            {"id": "ogrn", "name": "OGRN", "type": "text", "system": True},
            {
                "id": "orgType", "name": "Tipo", "type": "select", "system": True,
                "options": [
                    {"id": "legal", "label": "Persona juridica", "color": "#3B82F6"},
                    {"id": "individual", "label": "Empresario individual", "color": "#8B5CF6"},
                    {"id": "person", "label": "Persona fisica", "color": "#6B7280"},
                ],
            },
            {"id": "director", "name": "Director", "type": "text", "system": True},
            {
                "id": "status", "name": "Estado", "type": "status", "required": True, "system": True,
                "options": [
                    {"id": "active", "label": "Activa", "color": "#10B981"},
                    {"id": "inactive", "label": "Inactiva", "color": "#6B7280"},
                    {"id": "liquidated", "label": "Liquidada", "color": "#EF4444"},
                ],
            },
        ],
    },
    {
        "id": "address",
        "name": "Dirección",
        "order": 1,
        "fields": [{"id": "address", "name": "Dirección legal", "type": "textarea", "system": True}],
    },
    {
        "id": "bank",
        "name": "Datos bancarios",
        "order": 2,
        "fields": [
            {"id": "bankName", "name": "Banco", "type": "text", "system": True},
            {"id": "bankBik", "name": "BIK", "type": "text", "system": True},
            {"id": "employeeCount", "name": "Cantidad de empleados", "type": "number", "system": True},
        ],
    },
    _legacy_section(3),
]

CONTACT_SECTIONS: List[dict] = [
    {
        "id": "main",
        "name": "Información principal",
        "order": 0,
        "fields": [
            {"id": "email", "name": "Email", "type": "text", "system": True},
            {"id": "phone", "name": "Teléfono", "type": "text", "system": True},
            {"id": "position", "name": "Cargo", "type": "text", "system": True},
            # relatedWorkspaceId se completa al crear el workspace
            {"id": "counterparty", "name": "Contraparte", "type": "relation", "system": True},
            {
                "id": "status", "name": "Estado", "type": "status", "required": True, "system": True,
                "options": [
                    {"id": "active", "label": "Activo", "color": "#10B981"},
                    {"id": "inactive", "label": "Inactivo", "color": "#6B7280"},
                ],
            },
        ],
    },
    _legacy_section(1, extra=[{"id": "isEmployee", "name": "Empleado", "type": "checkbox", "system": True}]),
]

PRODUCT_SECTIONS: List[dict] = [
    {
        "id": "main",
        "name": "Información principal",
        "order": 0,
        "fields": [
            {"id": "productCode", "name": "Código", "type": "text", "system": True},
            {"id": "description", "name": "Descripción", "type": "textarea", "system": True},
            {"id": "category", "name": "Categoria", "type": "text", "system": True},
            {"id": "factoryName", "name": "Fabricante", "type": "text", "system": True},
            {"id": "inStock", "name": "En stock (u)", "type": "number", "system": True},
            {
                "id": "status", "name": "Estado", "type": "status", "required": True, "system": True,
                "options": [
                    {"id": "active", "label": "Activo", "color": "#10B981"},
                    {"id": "out_of_stock", "label": "Sin stock", "color": "#F59E0B"},
                    {"id": "disabled", "label": "Deshabilitado", "color": "#6B7280"},
                ],
            },
        ],
    },
    {
        "id": "pricing",
        "name": "Precios",
        "order": 1,
        "fields": [
            {"id": "price", "name": "Precio", "type": "number", "system": True},
            {"id": "basePrice", "name": "Precio base", "type": "number", "system": True},
            {"id": "fobPrice", "name": "Precio FOB", "type": "number", "system": True},
        ],
    },
    {
        "id": "specs",
        "name": "Caracteristicas",
        "order": 2,
        "fields": [{"id": "warranty", "name": "Garantia (meses)", "type": "number", "system": True}],
    },
    _legacy_section(3, url_label="Enlace en catálogo"),
]

DEAL_SECTIONS: List[dict] = [
    {
        "id": "main",
        "name": "Información principal",
        "order": 0,
        "fields": [
            {"id": "amount", "name": "Monto", "type": "number", "system": True},
            {"id": "counterparty", "name": "Contraparte", "type": "relation", "system": True},
            {
                "id": "completion", "name": "Resultado", "type": "select", "system": True,
                "options": [
                    {"id": "in_progress", "label": "En curso", "color": "#3B82F6"},
                    {"id": "won", "label": "Ganado", "color": "#10B981"},
                    {"id": "lost", "label": "Perdido", "color": "#EF4444"},
                ],
            },
        ],
    },
    _legacy_section(1),
]

DEFAULT_DEAL_STATUSES: List[dict] = [
    {"id": "new", "label": "Nuevo", "color": "#3B82F6", "order": 0},
    {"id": "won", "label": "Ganado", "color": "#10B981", "order": 98},
    {"id": "lost", "label": "Perdido", "color": "#EF4444", "order": 99},
]

# ==================== VALUE MAPS ====================

COUNTERPARTY_STATUS = ValueMap(
    mapping={
        "liquidated": "liquidated",
        "liquidating": "liquidated",
        "inactive": "inactive",
        "reorganizing": "inactive",
    },
    default="active",
)

COUNTERPARTY_ORG_TYPE = ValueMap(
    mapping={
        "individual": "individual",
        "ип": "individual",
        "person": "person",
        "фл": "person",
    },
    default="legal",
)

DEAL_COMPLETION = ValueMap(mapping={"won": "won", "lost": "lost"}, default="in_progress")


@dataclass(frozen=True)
class ReferenceDomain:
    """
    Config de un dominio legacy -> un workspace de sistema.

    incremental_mode:
    - keyset: filas con id > max id completado en el ledger
    - updated_since: filas con updated_at >= última sync completada
    """

    system_type: str
    name: str
    icon: str
    prefix: str
    source_model: Any
    id_column: Any
    title: TitleSpec
    status: StatusSpec
    field_mappings: tuple[FieldMapping, ...]
    sections: List[dict]
    url_kind: str
    url_attr: str = "id"
    source_criteria: Callable[[], Sequence[Any]] = lambda: ()
    relations: tuple[RelationSpec, ...] = ()
    incremental_mode: str = INCREMENTAL_KEYSET
    updated_at_column: Optional[Any] = None
    created_at_attr: Optional[str] = None
    depends_on: tuple[str, ...] = ()
    statuses_from_stages: bool = False

    def build_sections(self, related_workspace_ids: Optional[Dict[str, str]] = None) -> List[dict]:
        """Copia del esquema con relatedWorkspaceId resuelto en los campos relation."""
        sections = copy.deepcopy(self.sections)
        related = related_workspace_ids or {}
        for relation in self.relations:
            workspace_id = related.get(relation.domain)
            if not workspace_id:
                continue
            for section in sections:
                for f in section.get("fields", []):
                    if f["id"] == relation.target_field:
                        f["relatedWorkspaceId"] = workspace_id
        return sections

    def field_ids(self) -> set[str]:
        return {f["id"] for s in self.sections for f in s.get("fields", [])}


def build_payload(
    domain: ReferenceDomain,
    row: Any,
    *,
    urls: LegacyUrlBuilder,
    lookups: Optional[Lookups] = None,
    relation_maps: Optional[Dict[str, Dict[int, str]]] = None,
    related_workspace_ids: Optional[Dict[str, str]] = None,
) -> Payload:
    """
    Transforma una fila legacy en título, estado y payload `data`.

    Las relaciones no resueltas quedan en None (el registro igual se escribe).
    """
    data: Dict[str, Any] = {}
    for mapping in domain.field_mappings:
        data[mapping.target_field] = mapping.extract(row, lookups)

    for relation in domain.relations:
        data[relation.target_field] = _resolve_relation(
            relation, row, relation_maps or {}, related_workspace_ids or {}
        )

    data["legacyId"] = row.id
    data["legacyUrl"] = urls.for_kind(domain.url_kind, getattr(row, domain.url_attr, None) or row.id)

    return Payload(
        title=domain.title.build(row),
        status=domain.status.resolve(row, lookups),
        data=data,
    )


def _resolve_relation(
    relation: RelationSpec,
    row: Any,
    relation_maps: Dict[str, Dict[int, str]],
    related_workspace_ids: Dict[str, str],
) -> Optional[dict]:
    legacy_ref = getattr(row, relation.source_attr, None)
    if not legacy_ref or legacy_ref <= 0:
        return None
    entity_id = relation_maps.get(relation.domain, {}).get(legacy_ref)
    if not entity_id:
        return None
    return {
        "id": entity_id,
        "customId": f"{relation.prefix}-{legacy_ref}",
        "workspaceId": related_workspace_ids.get(relation.domain),
    }


REFERENCE_DOMAINS: Dict[str, ReferenceDomain] = {
    COUNTERPARTIES: ReferenceDomain(
        system_type=COUNTERPARTIES,
        name="Contrapartes",
        icon="🏢",
        prefix="CO",
        source_model=LegacyCounterparty,
        id_column=LegacyCounterparty.id,
        title=TitleSpec(attrs=("name",), label="Contraparte"),
        status=StatusSpec(default="active", source_attr="status", value_map=COUNTERPARTY_STATUS),
        field_mappings=(
            FieldMapping("inn", "inn", transform=none_if_empty),
            FieldMapping("kpp", "kpp", transform=none_if_empty),
            FieldMapping("ogrn", "ogrn", transform=none_if_empty),
            FieldMapping("type", "orgType", transform=COUNTERPARTY_ORG_TYPE.map),
            FieldMapping("director", "director", transform=none_if_empty),
            FieldMapping("address", "address", transform=none_if_empty),
            FieldMapping("bank_name", "bankName", transform=none_if_empty),
            FieldMapping("bank_bik", "bankBik", transform=none_if_empty),
            FieldMapping("employee_count", "employeeCount", transform=none_if_empty),
        ),
        sections=COUNTERPARTY_SECTIONS,
        url_kind="counterparty",
    ),
    CONTACTS: ReferenceDomain(
        system_type=CONTACTS,
        name="Contactos",
        icon="👤",
        prefix="CT",
        source_model=LegacyCustomer,
        id_column=LegacyCustomer.id,
        # Los empleados no son contactos
        source_criteria=lambda: (LegacyCustomer.is_manager == 0,),
        title=TitleSpec(attrs=("first_name", "last_name"), label="Contacto", fallback_attr="email"),
        status=StatusSpec(default="active"),
        field_mappings=(
            FieldMapping("email", "email", transform=none_if_empty),
            FieldMapping("phone", "phone", transform=none_if_empty),
            FieldMapping("position", "position", transform=none_if_empty),
            FieldMapping("is_manager", "isEmployee", transform=is_flag_set),
        ),
        relations=(
            RelationSpec(target_field="counterparty", source_attr="default_counterparty_id",
                         domain=COUNTERPARTIES, prefix="CO"),
        ),
        sections=CONTACT_SECTIONS,
        url_kind="customer",
        depends_on=(COUNTERPARTIES,),
    ),
    PRODUCTS: ReferenceDomain(
        system_type=PRODUCTS,
        name="Productos",
        icon="📦",
        prefix="PR",
        source_model=LegacyProduct,
        id_column=LegacyProduct.id,
        source_criteria=lambda: (LegacyProduct.enabled == 1,),
        title=TitleSpec(attrs=("name",), label="Producto"),
        status=StatusSpec(
            default="active",
            rules=(
                Rule("enabled", lambda v: v != 1, "disabled"),
                Rule("in_stock", lambda v: (v or 0) <= 0, "out_of_stock"),
            ),
        ),
        field_mappings=(
            FieldMapping("product_code", "productCode", transform=none_if_empty),
            FieldMapping("brief_description", "description", transform=none_if_empty),
            FieldMapping("price", "price", transform=to_number),
            FieldMapping("base_price", "basePrice", transform=to_number),
            FieldMapping("fob_price", "fobPrice", transform=to_number),
            FieldMapping("warranty", "warranty", default=12),
            FieldMapping("category_id", "category", lookup=LOOKUP_CATEGORIES),
            FieldMapping("factory_name", "factoryName", transform=none_if_empty),
            FieldMapping("in_stock", "inStock", transform=to_int_or_zero),
        ),
        sections=PRODUCT_SECTIONS,
        url_kind="product",
        url_attr="uri",
    ),
    DEALS: ReferenceDomain(
        system_type=DEALS,
        name="Negocios",
        icon="💰",
        prefix="DL",
        source_model=LegacyDeal,
        id_column=LegacyDeal.id,
        title=TitleSpec(attrs=("title",), label="Negocio"),
        status=StatusSpec(default="new", source_attr="deal_stage_id", lookup=LOOKUP_DEAL_STAGES),
        field_mappings=(
            FieldMapping("amount", "amount", transform=to_number),
            FieldMapping("completion", "completion", transform=DEAL_COMPLETION.map),
        ),
        relations=(
            RelationSpec(target_field="counterparty", source_attr="counterparty_id",
                         domain=COUNTERPARTIES, prefix="CO"),
        ),
        sections=DEAL_SECTIONS,
        url_kind="deal",
        incremental_mode=INCREMENTAL_UPDATED_SINCE,
        updated_at_column=LegacyDeal.updated_at,
        created_at_attr="created_at",
        depends_on=(COUNTERPARTIES,),
        statuses_from_stages=True,
    ),
}

# Orden de ejecución del cron: primero los dominios sin dependencias
SYNC_ORDER: List[str] = [COUNTERPARTIES, PRODUCTS, CONTACTS, DEALS]


def get_reference_domain(system_type: str) -> Optional[ReferenceDomain]:
    return REFERENCE_DOMAINS.get(system_type)


def stage_statuses(stages: Sequence[Any]) -> List[dict]:
    """Estados de workspace derivados de las etapas legacy del embudo."""
    return [
        {
            "id": stage.alias or f"stage-{stage.id}",
            "label": stage.title,
            "color": stage.color or "#6B7280",
            "order": stage.sort_order if stage.sort_order is not None else i,
        }
        for i, stage in enumerate(stages)
    ]


def stage_aliases(stages: Sequence[Any]) -> Dict[int, str]:
    return {stage.id: stage.alias or f"stage-{stage.id}" for stage in stages}
