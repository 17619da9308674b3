"""
Utilidades para manejo de fechas y horas.

La base legacy guarda fechas naive en hora local; el destino usa
timestamptz. Estas utilidades concentran las conversiones.
"""
from datetime import datetime, timezone
from typing import Optional


class DateTimeUtils:
    """Clase de utilidades para operaciones con fechas y horas."""

    @staticmethod
    def now_utc() -> datetime:
        """
        Obtiene la fecha y hora actual en UTC.

        Returns:
            datetime: Fecha y hora actual en UTC
        """
        return datetime.now(timezone.utc)

    @staticmethod
    def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
        """
        Normaliza datetime a UTC (aware). Un valor naive se asume UTC.
        """
        if dt is None:
            return None
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @staticmethod
    def to_legacy_clock(dt: Optional[datetime]) -> Optional[datetime]:
        """
        Convierte un instante del destino al reloj legacy (naive, hora local).
        Un valor naive se asume UTC.
        """
        if dt is None:
            return None
        return DateTimeUtils.ensure_utc(dt).astimezone().replace(tzinfo=None)

    @staticmethod
    def to_iso_string(dt: Optional[datetime]) -> Optional[str]:
        """
        Convierte un datetime a string ISO 8601.

        Args:
            dt: Objeto datetime

        Returns:
            str: Fecha en formato ISO 8601
        """
        return dt.isoformat() if dt else None
