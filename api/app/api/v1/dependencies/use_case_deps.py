"""
Dependencias para inyección de casos de uso.

Los servicios de migración y sincronización guardan estado de corrida, por
eso se crean una sola vez al startup y viven en `app.state`.
"""
from fastapi import Request

from app.application.use_cases.legacy_migration_use_cases import LegacyMigrationUseCases
from app.application.use_cases.legacy_sync_use_cases import LegacySyncUseCases
from app.application.use_cases.reference_sync_use_cases import ReferenceSyncUseCases


def get_migration_use_cases(request: Request) -> LegacyMigrationUseCases:
    """
    Dependencia para obtener el orquestador de la migración de tickets.

    Returns:
        LegacyMigrationUseCases: Instancia única del proceso
    """
    return request.app.state.legacy_migration


def get_legacy_sync_use_cases(request: Request) -> LegacySyncUseCases:
    """Dependencia para obtener el scheduler de sincronización incremental."""
    return request.app.state.legacy_sync


def get_reference_sync_use_cases(request: Request) -> ReferenceSyncUseCases:
    """Dependencia para obtener el motor de sincronización de referencia."""
    return request.app.state.reference_sync
