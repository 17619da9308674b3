"""
Endpoints para la migración histórica de tickets del CRM legacy.

La corrida se ejecuta en background; estos endpoints solo la inician,
la detienen y exponen su progreso y auditoría.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from app.api.v1.dependencies.use_case_deps import get_migration_use_cases
from app.application.dto.migration_dto import (
    MessageResponseDTO,
    MigrationLogPageDTO,
    MigrationPreviewDTO,
    MigrationProgressDTO,
    MigrationStartRequestDTO,
    RetryFailedResultDTO,
    UpdateAssigneesResultDTO,
    ValidationResultDTO,
)
from app.application.use_cases.legacy_migration_use_cases import LegacyMigrationUseCases


router = APIRouter(prefix="/legacy/migration", tags=["Legacy Migration"])


@router.get(
    "/preview",
    response_model=MigrationPreviewDTO,
    summary="Conteos previos a la migración"
)
async def get_preview(
    use_cases: LegacyMigrationUseCases = Depends(get_migration_use_cases)
) -> MigrationPreviewDTO:
    """
    Cuenta tickets y respuestas legacy, tickets ya migrados y empleados
    mapeables. No escribe nada.
    """
    return MigrationPreviewDTO.model_validate(await use_cases.get_preview())


@router.post(
    "/start",
    response_model=MessageResponseDTO,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Iniciar migración"
)
async def start_migration(
    payload: Optional[MigrationStartRequestDTO] = None,
    use_cases: LegacyMigrationUseCases = Depends(get_migration_use_cases)
) -> MessageResponseDTO:
    """
    Inicia la migración en background.

    - 409 si ya hay una corrida activa
    - 503 si la base legacy no está disponible
    - dry_run=True solo calcula conteos
    """
    payload = payload or MigrationStartRequestDTO()
    result = await use_cases.start(
        batch_size=payload.batch_size,
        max_requests=payload.max_requests,
        dry_run=payload.dry_run,
    )
    return MessageResponseDTO(**result)


@router.post("/stop", response_model=MessageResponseDTO, summary="Detener migración")
async def stop_migration(
    use_cases: LegacyMigrationUseCases = Depends(get_migration_use_cases)
) -> MessageResponseDTO:
    """Detiene la corrida al terminar el batch en curso."""
    return MessageResponseDTO(**use_cases.stop())


@router.get("/status", response_model=MigrationProgressDTO, summary="Progreso de la migración")
async def get_status(
    use_cases: LegacyMigrationUseCases = Depends(get_migration_use_cases)
) -> MigrationProgressDTO:
    return MigrationProgressDTO.model_validate(use_cases.get_progress())


@router.post("/validate", response_model=ValidationResultDTO, summary="Validar migración")
async def validate_migration(
    use_cases: LegacyMigrationUseCases = Depends(get_migration_use_cases)
) -> ValidationResultDTO:
    """Cobertura y chequeo de integridad sobre una muestra del ledger."""
    return ValidationResultDTO.model_validate(await use_cases.validate())


@router.post("/retry-failed", response_model=RetryFailedResultDTO, summary="Reintentar tickets fallidos")
async def retry_failed(
    use_cases: LegacyMigrationUseCases = Depends(get_migration_use_cases)
) -> RetryFailedResultDTO:
    return RetryFailedResultDTO.model_validate(await use_cases.retry_failed())


@router.get("/log", response_model=MigrationLogPageDTO, summary="Ledger de migración")
async def get_migration_log(
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(completed|failed)$"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    use_cases: LegacyMigrationUseCases = Depends(get_migration_use_cases)
) -> MigrationLogPageDTO:
    """Filas del ledger paginadas, opcionalmente filtradas por estado."""
    page = await use_cases.get_migration_log(status=status_filter, limit=limit, offset=offset)
    return MigrationLogPageDTO.model_validate(page, from_attributes=True)


@router.post(
    "/update-assignees",
    response_model=UpdateAssigneesResultDTO,
    summary="Completar responsables de tickets migrados"
)
async def update_assignees(
    use_cases: LegacyMigrationUseCases = Depends(get_migration_use_cases)
) -> UpdateAssigneesResultDTO:
    return UpdateAssigneesResultDTO.model_validate(await use_cases.update_assignees())
