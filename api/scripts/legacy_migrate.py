"""
CLI: CRM legacy -> sistema activo.

Uso recomendado:
  - Ejecutar la migración histórica como job, fuera del proceso del API,
    para no depender del ciclo de vida de un worker.

Variables de entorno requeridas:
  - DATABASE_URL (destino, postgresql+asyncpg://...)
  - LEGACY_DATABASE_URL (origen, mysql+aiomysql://...)

Ejecución:
  python scripts/legacy_migrate.py preview
  python scripts/legacy_migrate.py migrate --batch-size 500
  python scripts/legacy_migrate.py migrate --dry-run
  python scripts/legacy_migrate.py retry-failed
  python scripts/legacy_migrate.py validate
  python scripts/legacy_migrate.py reference counterparties --full
  python scripts/legacy_migrate.py reference all
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger
from dotenv import load_dotenv

# Permite ejecutar este script desde cualquier cwd sin configurar PYTHONPATH.
_API_ROOT = Path(__file__).resolve().parents[1]
if str(_API_ROOT) not in sys.path:
    sys.path.insert(0, str(_API_ROOT))

# Cargar variables desde .env si existe (api/.env o raiz del repo)
load_dotenv(_API_ROOT / ".env", override=False)
load_dotenv(_API_ROOT.parent / ".env", override=False)

from app.application.services.reference_domains import SYNC_ORDER
from app.application.use_cases.legacy_migration_use_cases import LegacyMigrationUseCases
from app.application.use_cases.reference_sync_use_cases import ReferenceSyncUseCases
from app.infrastructure.database.session import AsyncSessionLocal, close_db
from app.infrastructure.legacy.repository import LegacyRepository
from app.infrastructure.legacy.session import close_legacy_db, get_legacy_session_factory
from app.shared.exceptions.base import AppException


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Migración y sincronización desde el CRM legacy")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("preview", help="Conteos previos (no escribe nada)")

    migrate = sub.add_parser("migrate", help="Migración histórica de tickets")
    migrate.add_argument("--batch-size", type=int, default=None)
    migrate.add_argument("--max-requests", type=int, default=None)
    migrate.add_argument("--dry-run", action="store_true", help="Solo conteos, no escribe")

    sub.add_parser("retry-failed", help="Reintenta los tickets fallidos del ledger")
    sub.add_parser("validate", help="Cobertura e integridad de la migración")
    sub.add_parser("update-assignees", help="Completa responsables faltantes")

    reference = sub.add_parser("reference", help="Sync de datos de referencia")
    reference.add_argument("domain", choices=[*SYNC_ORDER, "all"])
    reference.add_argument("--full", action="store_true", help="Sync completo (actualiza existentes)")
    reference.add_argument("--batch-size", type=int, default=None)
    return parser


async def _run(args: argparse.Namespace) -> int:
    legacy = LegacyRepository(get_legacy_session_factory())
    if not await legacy.check_connection():
        logger.error("No se pudo conectar a la base legacy (LEGACY_DATABASE_URL)")
        return 1

    migration = LegacyMigrationUseCases(legacy, AsyncSessionLocal)

    if args.command == "preview":
        for key, value in (await migration.get_preview()).items():
            logger.info(f"{key}: {value}")

    elif args.command == "migrate":
        result = await migration.start(
            batch_size=args.batch_size,
            max_requests=args.max_requests,
            dry_run=args.dry_run,
        )
        logger.info(result["message"])
        if not args.dry_run:
            progress = await migration.wait_for_completion()
            if progress.error:
                logger.error(f"Migración abortada: {progress.error}")
                return 1

    elif args.command == "retry-failed":
        logger.info((await migration.retry_failed())["message"])

    elif args.command == "validate":
        report = await migration.validate()
        logger.info(
            f"Cobertura {report.coverage_percent}% ({report.migration_log_completed}/{report.legacy_total}), "
            f"fallidos={report.migration_log_failed}, "
            f"integridad={report.integrity_errors}/{report.sample_size}"
        )
        return 1 if report.integrity_errors else 0

    elif args.command == "update-assignees":
        result = await migration.update_assignees()
        logger.info(f"Responsables actualizados: {result['updated']} de {result['total']}")

    elif args.command == "reference":
        engine = ReferenceSyncUseCases(legacy, AsyncSessionLocal)
        domains = SYNC_ORDER if args.domain == "all" else [args.domain]
        for name in domains:
            await engine.sync(name, batch_size=args.batch_size, full_sync=args.full)

    return 0


async def _main(args: argparse.Namespace) -> int:
    try:
        return await _run(args)
    except AppException as e:
        logger.error(f"{e.error_code}: {e.message}")
        return 1
    finally:
        await close_legacy_db()
        await close_db()


def main() -> int:
    args = _build_parser().parse_args()
    return asyncio.run(_main(args))


if __name__ == "__main__":
    raise SystemExit(main())
