"""
Servicios de aplicación.

Contiene la lógica de negocio reutilizable que no pertenece
a un caso de uso específico.
"""
from app.application.services.identity_mapper import IdentityMap, IdentityMapper
from app.application.services.ticket_transformer import TicketDraft, transform_ticket, clean_html
from app.application.services.migration_auditor import ValidationAuditor, ValidationReport, compute_coverage
from app.application.services.reference_domains import (
    REFERENCE_DOMAINS,
    SYNC_ORDER,
    ReferenceDomain,
    build_payload,
)

__all__ = [
    # Identidades
    "IdentityMap",
    "IdentityMapper",
    # Transformación de tickets
    "TicketDraft",
    "transform_ticket",
    "clean_html",
    # Auditoria
    "ValidationAuditor",
    "ValidationReport",
    "compute_coverage",
    # Datos de referencia
    "REFERENCE_DOMAINS",
    "SYNC_ORDER",
    "ReferenceDomain",
    "build_payload",
]
