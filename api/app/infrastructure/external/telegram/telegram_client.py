"""
Cliente para interactuar con la API de Telegram.
"""
from typing import Optional

import httpx
from loguru import logger
from app.core.config import settings

class TelegramClient:
    """
    Cliente simple para enviar alertas y resumenes de sincronización vía Telegram Bot API.
    """

    def __init__(self, bot_token: Optional[str] = None, default_chat_id: Optional[str] = None):
        self.bot_token = bot_token or settings.TELEGRAM_BOT_TOKEN
        self.default_chat_id = default_chat_id or settings.TELEGRAM_DEFAULT_CHAT_ID
        self.base_url = f"https://api.telegram.org/bot{self.bot_token}"

    def is_configured(self) -> bool:
        return bool(self.bot_token and self.default_chat_id)

    async def send_message(self, text: str, chat_id: Optional[str] = None) -> bool:
        """
        Envía un mensaje HTML a un chat específico (o al chat por defecto).

        Las notificaciones son best-effort: un fallo se loguea y retorna False.

        Args:
            text: Contenido del mensaje.
            chat_id: ID del chat de destino.
        """
        chat_id = chat_id or self.default_chat_id
        if not self.bot_token or not chat_id:
            logger.warning("Telegram Bot Token o Chat ID no proporcionados. Saltando notificación.")
            return False

        url = f"{self.base_url}/sendMessage"
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML"
        }

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                return True
        except httpx.HTTPError as e:
            logger.error(f"Error al enviar mensaje de Telegram: {e}")
            return False
