"""
Endpoints para la sincronización incremental de tickets legacy.
"""
from fastapi import APIRouter, Depends

from app.api.v1.dependencies.use_case_deps import get_legacy_sync_use_cases
from app.application.dto.migration_dto import (
    IncrementalSyncResultDTO,
    IncrementalSyncStatusDTO,
    MessageResponseDTO,
)
from app.application.use_cases.legacy_sync_use_cases import LegacySyncUseCases


router = APIRouter(prefix="/legacy/sync", tags=["Legacy Sync"])


@router.get("/status", response_model=IncrementalSyncStatusDTO, summary="Estado del sync incremental")
async def get_status(
    use_cases: LegacySyncUseCases = Depends(get_legacy_sync_use_cases)
) -> IncrementalSyncStatusDTO:
    """Flag habilitado, tick en curso, cursor y resultado del último tick."""
    return IncrementalSyncStatusDTO.model_validate(use_cases.get_status())


@router.post("/enable", response_model=MessageResponseDTO, summary="Habilitar sync incremental")
async def enable_sync(
    use_cases: LegacySyncUseCases = Depends(get_legacy_sync_use_cases)
) -> MessageResponseDTO:
    return MessageResponseDTO(**use_cases.enable())


@router.post("/disable", response_model=MessageResponseDTO, summary="Deshabilitar sync incremental")
async def disable_sync(
    use_cases: LegacySyncUseCases = Depends(get_legacy_sync_use_cases)
) -> MessageResponseDTO:
    return MessageResponseDTO(**use_cases.disable())


@router.post("/run", response_model=IncrementalSyncResultDTO, summary="Ejecutar un tick ahora")
async def run_sync(
    use_cases: LegacySyncUseCases = Depends(get_legacy_sync_use_cases)
) -> IncrementalSyncResultDTO:
    """
    Ejecuta un tick manual. Si ya hay uno en curso retorna todo en cero.
    """
    return IncrementalSyncResultDTO.model_validate(await use_cases.run_sync())
