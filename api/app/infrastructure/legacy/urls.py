"""
Enlaces profundos al CRM legacy (se guardan en el payload de cada entidad).
"""
from typing import Optional, Union

from app.core.config import settings


class LegacyUrlBuilder:
    """Genera URLs del CRM legacy a partir de LEGACY_BASE_URL."""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or settings.LEGACY_BASE_URL).rstrip("/")

    def request_url(self, request_id: int) -> str:
        return f"{self.base_url}/crm/request/{request_id}"

    def deal_url(self, deal_id: int) -> str:
        return f"{self.base_url}/crm/deal/{deal_id}"

    def customer_url(self, customer_id: int) -> str:
        return f"{self.base_url}/crm/customer/{customer_id}"

    def counterparty_url(self, counterparty_id: int) -> str:
        return f"{self.base_url}/crm/counterparty/{counterparty_id}"

    def product_url(self, product_ref: Union[int, str]) -> str:
        """El catálogo usa el slug (uri) del producto cuando existe."""
        return f"{self.base_url}/catalog/product/{product_ref}"

    def for_kind(self, kind: str, ref: Union[int, str]) -> str:
        builders = {
            "request": self.request_url,
            "deal": self.deal_url,
            "customer": self.customer_url,
            "counterparty": self.counterparty_url,
            "product": self.product_url,
        }
        return builders[kind](ref)
