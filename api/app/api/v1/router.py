"""
Router principal de la API v1.
Agrupa todos los endpoints de la version 1.
"""
from fastapi import APIRouter

from app.api.v1.endpoints import legacy_migration, legacy_sync, reference_sync


# Router principal de la API v1
api_router = APIRouter(prefix="/v1")

# Incluir routers de endpoints especificos
api_router.include_router(legacy_migration.router)
api_router.include_router(legacy_sync.router)
api_router.include_router(reference_sync.router)
