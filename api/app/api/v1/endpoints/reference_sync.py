"""
Endpoints para sincronizar datos de referencia legacy hacia workspaces de sistema.

Dominios: counterparties, contacts, products, deals.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from app.api.v1.dependencies.use_case_deps import get_reference_sync_use_cases
from app.application.dto.migration_dto import (
    MessageResponseDTO,
    ReferencePreviewDTO,
    ReferenceSyncProgressDTO,
    ReferenceSyncResultDTO,
    ReferenceSyncStatusDTO,
    WorkspaceDTO,
)
from app.application.use_cases.reference_sync_use_cases import ReferenceSyncUseCases


router = APIRouter(prefix="/system-sync", tags=["System Sync"])


@router.get("/status", response_model=ReferenceSyncStatusDTO, summary="Estado de todos los dominios")
async def get_status(
    use_cases: ReferenceSyncUseCases = Depends(get_reference_sync_use_cases)
) -> ReferenceSyncStatusDTO:
    return ReferenceSyncStatusDTO.model_validate(use_cases.get_status(), from_attributes=True)


@router.post("/workspaces", response_model=List[WorkspaceDTO], summary="Crear workspaces de sistema")
async def ensure_workspaces(
    use_cases: ReferenceSyncUseCases = Depends(get_reference_sync_use_cases)
) -> List[WorkspaceDTO]:
    """Crea (o actualiza el esquema de) los workspaces de los cuatro dominios."""
    workspaces = await use_cases.ensure_all_workspaces()
    return [WorkspaceDTO.model_validate(w) for w in workspaces]


@router.get("/workspaces", response_model=List[WorkspaceDTO], summary="Listar workspaces de sistema")
async def list_workspaces(
    use_cases: ReferenceSyncUseCases = Depends(get_reference_sync_use_cases)
) -> List[WorkspaceDTO]:
    return [WorkspaceDTO.model_validate(w) for w in await use_cases.list_workspaces()]


@router.get("/{domain}/preview", response_model=ReferencePreviewDTO, summary="Conteos de un dominio")
async def get_preview(
    domain: str,
    use_cases: ReferenceSyncUseCases = Depends(get_reference_sync_use_cases)
) -> ReferencePreviewDTO:
    return ReferencePreviewDTO.model_validate(await use_cases.get_preview(domain))


@router.get("/{domain}/progress", response_model=ReferenceSyncProgressDTO, summary="Progreso de un dominio")
async def get_progress(
    domain: str,
    use_cases: ReferenceSyncUseCases = Depends(get_reference_sync_use_cases)
) -> ReferenceSyncProgressDTO:
    return ReferenceSyncProgressDTO.model_validate(use_cases.get_progress(domain))


@router.post(
    "/{domain}/run",
    response_model=ReferenceSyncResultDTO,
    status_code=status.HTTP_200_OK,
    summary="Sincronizar un dominio"
)
async def run_sync(
    domain: str,
    full_sync: bool = Query(
        default=False,
        description="Si True, recorre todas las filas y actualiza las ya sincronizadas."
    ),
    batch_size: Optional[int] = Query(None, ge=1, le=5000),
    use_cases: ReferenceSyncUseCases = Depends(get_reference_sync_use_cases)
) -> ReferenceSyncResultDTO:
    """
    Sincroniza un dominio y retorna el resumen.

    - 404 si el dominio no existe
    - 409 si el dominio ya se está sincronizando
    - 503 si legacy no está disponible o se abre el circuit breaker
    """
    result = await use_cases.sync(domain, batch_size=batch_size, full_sync=full_sync)
    return ReferenceSyncResultDTO.model_validate(result)


@router.post("/cron/enable", response_model=MessageResponseDTO, summary="Habilitar cron de referencia")
async def enable_cron(
    use_cases: ReferenceSyncUseCases = Depends(get_reference_sync_use_cases)
) -> MessageResponseDTO:
    return MessageResponseDTO(**use_cases.enable_cron())


@router.post("/cron/disable", response_model=MessageResponseDTO, summary="Deshabilitar cron de referencia")
async def disable_cron(
    use_cases: ReferenceSyncUseCases = Depends(get_reference_sync_use_cases)
) -> MessageResponseDTO:
    return MessageResponseDTO(**use_cases.disable_cron())
