"""
Manejadores de eventos de inicio y cierre de la aplicación.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable
from fastapi import FastAPI
from loguru import logger
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.application.use_cases.legacy_migration_use_cases import LegacyMigrationUseCases
from app.application.use_cases.legacy_sync_use_cases import LegacySyncUseCases
from app.application.use_cases.reference_sync_use_cases import ReferenceSyncUseCases
from app.infrastructure.database.session import AsyncSessionLocal, init_db, close_db
from app.infrastructure.legacy.repository import LegacyRepository
from app.infrastructure.legacy.session import get_legacy_session_factory, close_legacy_db

LEGACY_SYNC_JOB_ID = "legacy_incremental_sync"
REFERENCE_NIGHTLY_JOB_ID = "reference_sync_nightly"
REFERENCE_WEEKLY_JOB_ID = "reference_sync_weekly_full"


def startup_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de inicio de la aplicación.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Función asíncrona de inicio
    """
    async def startup() -> None:
        """Inicializa recursos al inicio de la aplicación."""
        try:
            logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
            logger.info(f"Entorno: {settings.ENVIRONMENT}")

            # Configurar logging adicional
            logger.add(
                settings.LOG_FILE,
                rotation="500 MB",
                retention="10 days",
                level=settings.LOG_LEVEL
            )

            # Validar configuración crítica
            _validate_config()

            # Inicializar base de datos (crea tablas si no existen)
            await init_db()
            logger.info("Base de datos inicializada")

            # Conexión legacy (solo lectura); la app arranca aunque no responda
            legacy = LegacyRepository(get_legacy_session_factory())
            if await legacy.check_connection():
                logger.info("Base de datos legacy conectada")
            else:
                logger.warning("Base de datos legacy no disponible: migración y sync deshabilitados")

            _build_services(app, legacy)
            _start_scheduler(app)

            logger.success("Aplicación iniciada correctamente")

            # Mostrar URLs disponibles
            _print_available_urls()

        except Exception as e:
            logger.error(f"Error durante startup: {e}")
            logger.exception("Detalle del error:")
            raise

    return startup


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Ciclo de vida de la aplicación: startup antes de servir, shutdown al cerrar."""
    await startup_handler(app)()
    try:
        yield
    finally:
        await shutdown_handler(app)()


def _validate_config() -> None:
    """Valida que la configuración crítica esté presente."""
    warnings = []

    if not settings.LEGACY_DATABASE_URL:
        warnings.append("LEGACY_DATABASE_URL no configurada - la migración no funcionará")
    if not settings.TELEGRAM_BOT_TOKEN or not settings.TELEGRAM_DEFAULT_CHAT_ID:
        warnings.append("Telegram no configurado - no se enviarán resumenes ni alertas")

    # Mostrar advertencias
    for warning in warnings:
        logger.warning(f"CONFIG: {warning}")


def _build_services(app: FastAPI, legacy: LegacyRepository) -> None:
    """Crea las instancias unicas de los servicios con estado de corrida."""
    migration = LegacyMigrationUseCases(legacy, AsyncSessionLocal)
    app.state.legacy_migration = migration
    app.state.legacy_sync = LegacySyncUseCases(migration)
    app.state.reference_sync = ReferenceSyncUseCases(legacy, AsyncSessionLocal)


def _start_scheduler(app: FastAPI) -> None:
    """
    Registra los jobs periódicos:
    - tick incremental de tickets cada LEGACY_SYNC_INTERVAL_MINUTES
    - sync incremental de referencia todas las noches (02:00)
    - sync completo de referencia los domingos (03:00)

    Los flags enabled se consultan en cada disparo, así habilitar o
    deshabilitar por API no requiere reprogramar jobs.
    """
    scheduler = AsyncIOScheduler()
    legacy_sync: LegacySyncUseCases = app.state.legacy_sync
    reference_sync: ReferenceSyncUseCases = app.state.reference_sync

    scheduler.add_job(
        legacy_sync.scheduled_tick,
        IntervalTrigger(minutes=settings.LEGACY_SYNC_INTERVAL_MINUTES),
        id=LEGACY_SYNC_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        reference_sync.scheduled_sync,
        CronTrigger(hour=2, minute=0),
        id=REFERENCE_NIGHTLY_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        reference_sync.scheduled_full_sync,
        CronTrigger(day_of_week="sun", hour=3, minute=0),
        id=REFERENCE_WEEKLY_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    app.state.scheduler = scheduler
    logger.info(
        f"Scheduler iniciado: tick incremental cada {settings.LEGACY_SYNC_INTERVAL_MINUTES} min, "
        f"referencia 02:00 diario y completo domingo 03:00"
    )


def _print_available_urls() -> None:
    """Imprime las URLs disponibles de la aplicación."""
    # Determinar la URL base de acceso
    if settings.HOST == "0.0.0.0":
        access_host = "localhost"
    else:
        access_host = settings.HOST

    base_url = f"http://{access_host}:{settings.PORT}"

    # Mostrar las URLs disponibles
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info("<bold><green>URLS DISPONIBLES:</green></bold>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info(f"<cyan>  Swagger UI:  {base_url}/docs</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Migración:   {base_url}/api/v1/legacy/migration/status</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Sync:        {base_url}/api/v1/system-sync/status</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Health:      {base_url}/health</cyan>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")


def shutdown_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de cierre de la aplicación.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Función asíncrona de cierre
    """
    async def shutdown() -> None:
        """Libera recursos al cerrar la aplicación."""
        logger.info("Cerrando aplicación...")

        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler detenido")

        migration = getattr(app.state, "legacy_migration", None)
        if migration is not None and migration.is_running():
            migration.stop()
            logger.warning("Migración en curso: se detendrá al terminar el batch actual")

        # Cerrar conexiones de base de datos
        await close_legacy_db()
        await close_db()
        logger.info("Conexiones de base de datos cerradas")

        logger.success("Aplicación cerrada correctamente")

    return shutdown
