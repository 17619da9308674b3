"""
Casos de uso de la aplicación.
"""
from .legacy_migration_use_cases import LegacyMigrationUseCases
from .legacy_sync_use_cases import LegacySyncUseCases
from .reference_sync_use_cases import ReferenceSyncUseCases

__all__ = ["LegacyMigrationUseCases", "LegacySyncUseCases", "ReferenceSyncUseCases"]
