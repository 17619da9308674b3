"""
Excepciones relacionadas con la lógica de dominio.
"""
from typing import Any

from app.shared.exceptions.base import AppException


class DomainException(AppException):
    """Excepción base para errores de dominio."""

    def __init__(self, message: str, error_code: str = "DOMAIN_ERROR", details=None):
        super().__init__(
            message=message,
            status_code=400,
            error_code=error_code,
            details=details
        )


class MigrationAlreadyRunningException(DomainException):
    """Excepción cuando ya hay una corrida activa para el mismo dominio."""

    def __init__(self, domain: str = "tickets"):
        super().__init__(
            message=f"La migración de '{domain}' ya está en ejecución",
            error_code="MIGRATION_ALREADY_RUNNING",
            details={"domain": domain}
        )
        self.status_code = 409


class LegacyUnavailableException(DomainException):
    """Excepción cuando la base legacy no está configurada o no responde."""

    def __init__(self):
        super().__init__(
            message="La base de datos legacy no está disponible",
            error_code="LEGACY_UNAVAILABLE",
        )
        self.status_code = 503


class MigrationNotInitializedException(DomainException):
    """Excepción cuando se procesa un batch sin mapeo de identidades ni workspace."""

    def __init__(self):
        super().__init__(
            message="La migración no está inicializada (falta mapeo de usuarios o workspace)",
            error_code="MIGRATION_NOT_INITIALIZED",
        )
        self.status_code = 409


class UnknownSyncDomainException(DomainException):
    """Excepción cuando se pide sincronizar un dominio de referencia inexistente."""

    def __init__(self, domain: Any, valid_domains: list[str]):
        super().__init__(
            message=f"Dominio de sincronización '{domain}' no existe",
            error_code="UNKNOWN_SYNC_DOMAIN",
            details={"domain_provided": str(domain), "valid_domains": valid_domains}
        )
        self.status_code = 404


class CircuitBreakerOpenException(DomainException):
    """Excepción cuando la tasa de errores de un sync supera el umbral."""

    def __init__(self, domain: str, errors: int, processed: int, threshold: float):
        rate = round(errors / processed * 100) if processed else 0
        super().__init__(
            message=(
                f"Circuit breaker {domain}: {errors}/{processed} errores "
                f"({rate}% > {threshold * 100:g}%)"
            ),
            error_code="CIRCUIT_BREAKER_OPEN",
            details={"domain": domain, "errors": errors, "processed": processed},
        )
        self.status_code = 503
