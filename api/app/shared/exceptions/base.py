"""
Excepción base de la aplicación.

Toda excepción de dominio lleva un código HTTP y un código de error estable;
el handler global de main.py y la CLI las serializan con to_dict().
"""
from typing import Optional, Dict, Any


class AppException(Exception):
    """
    Excepción base de la aplicación.
    Todas las excepciones personalizadas deben heredar de esta clase.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Args:
            message: Mensaje de error descriptivo
            status_code: Código de estado HTTP
            error_code: Código de error estable (ej. MIGRATION_ALREADY_RUNNING)
            details: Datos adicionales para el cliente
        """
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Cuerpo JSON de error: {error, message, details}."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }
