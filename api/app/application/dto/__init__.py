"""
Data Transfer Objects (DTOs) para la capa de aplicación.
"""
from .migration_dto import (
    MessageResponseDTO,
    MigrationStartRequestDTO,
    MigrationProgressDTO,
    MigrationPreviewDTO,
    ValidationResultDTO,
    MigrationLogEntryDTO,
    MigrationLogPageDTO,
    RetryFailedResultDTO,
    UpdateAssigneesResultDTO,
    IncrementalSyncResultDTO,
    IncrementalSyncStatusDTO,
    ReferenceSyncResultDTO,
    ReferenceSyncProgressDTO,
    ReferenceSyncStatusDTO,
    ReferencePreviewDTO,
    WorkspaceDTO,
)

__all__ = [
    "MessageResponseDTO",
    "MigrationStartRequestDTO",
    "MigrationProgressDTO",
    "MigrationPreviewDTO",
    "ValidationResultDTO",
    "MigrationLogEntryDTO",
    "MigrationLogPageDTO",
    "RetryFailedResultDTO",
    "UpdateAssigneesResultDTO",
    "IncrementalSyncResultDTO",
    "IncrementalSyncStatusDTO",
    "ReferenceSyncResultDTO",
    "ReferenceSyncProgressDTO",
    "ReferenceSyncStatusDTO",
    "ReferencePreviewDTO",
    "WorkspaceDTO",
]
