"""
DTOs para la migración y sincronización desde el CRM legacy.

Los estados internos son dataclasses; estos modelos definen el contrato
HTTP y se construyen con `model_validate(obj)` (from_attributes).
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _FromAttributes(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class MigrationStartRequestDTO(BaseModel):
    """Parámetros de arranque de la migración completa."""

    batch_size: Optional[int] = Field(None, ge=1, le=5000, description="Tickets por batch (default MIGRATION_BATCH_SIZE)")
    max_requests: Optional[int] = Field(None, ge=1, description="Tope de tickets a procesar")
    dry_run: bool = Field(False, description="Solo calcula conteos, no escribe nada")


class MessageResponseDTO(BaseModel):
    message: str


class MigrationProgressDTO(_FromAttributes):
    """Snapshot del progreso de la corrida."""

    total: int
    processed: int
    skipped: int
    failed: int
    comments: int
    current_batch: int
    total_batches: int
    failed_batches: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    is_running: bool
    error: Optional[str] = None


class MigrationPreviewDTO(_FromAttributes):
    legacy_available: bool
    legacy_requests_count: int
    legacy_answers_count: int
    already_migrated_count: int
    remaining_count: int
    employee_mapping_count: int
    unmapped_employee_count: int
    workspace_exists: bool
    workspace_id: Optional[str] = None


class ValidationResultDTO(_FromAttributes):
    entities_created: int
    legacy_total: int
    migration_log_completed: int
    migration_log_failed: int
    coverage_percent: int
    sample_size: int
    integrity_errors: int


class MigrationLogEntryDTO(_FromAttributes):
    legacy_request_id: int
    entity_id: Optional[str] = None
    comments_count: int
    status: str
    error_message: Optional[str] = None
    migrated_at: Optional[datetime] = None


class MigrationLogPageDTO(BaseModel):
    items: List[MigrationLogEntryDTO]
    total: int
    limit: int
    offset: int


class RetryFailedResultDTO(_FromAttributes):
    message: str
    retried: int
    processed: int
    failed: int


class UpdateAssigneesResultDTO(_FromAttributes):
    updated: int
    total: int


class IncrementalSyncResultDTO(_FromAttributes):
    new: int
    updated: int
    new_comments: int
    errors: int
    synced_at: Optional[datetime] = None


class IncrementalSyncStatusDTO(_FromAttributes):
    enabled: bool
    is_syncing: bool
    cursor: Optional[datetime] = None
    last_result: Optional[IncrementalSyncResultDTO] = None
    total_synced: int
    interval_minutes: int


class ReferenceSyncResultDTO(_FromAttributes):
    domain: str
    created: int
    updated: int
    errors: int
    total_processed: int
    duration_ms: int
    full_sync: bool


class ReferenceSyncProgressDTO(_FromAttributes):
    domain: str
    is_running: bool
    total_items: int
    processed_items: int
    created_items: int
    updated_items: int
    errors: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_error: Optional[str] = None


class ReferenceSyncStatusDTO(BaseModel):
    domains: List[ReferenceSyncProgressDTO]
    cron_enabled: bool
    last_cron_run_at: Optional[datetime] = None


class ReferencePreviewDTO(_FromAttributes):
    domain: str
    total_legacy: int
    already_synced: int
    remaining: int
    workspace_exists: bool
    workspace_id: Optional[str] = None


class WorkspaceDTO(_FromAttributes):
    id: str
    name: str
    prefix: str
    system_type: Optional[str] = None
