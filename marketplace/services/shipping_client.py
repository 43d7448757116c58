# marketplace/services/shipping_client.py
from typing import Dict, Iterable, Optional

import requests

from marketplace.services.pricing import ShippingQuote
from marketplace.utils.logging import get_logger
from marketplace.utils.retry import http_retry
from marketplace.utils.settings import SHIPPING_SERVICE_URL

logger = get_logger(__name__)


class ShippingClient:
    """Client of the shipping-rate service. Returns one quote per vendor key."""

    def __init__(self, base_url: str | None = None, timeout: int = 5):
        self.base_url = (base_url or SHIPPING_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    @http_retry()
    def _post(self, payload: dict) -> dict:
        url = f"{self.base_url}/quotes"
        logger.info(f"ShippingClient POST {url}")

        resp = requests.post(url, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def quote(self, vendor_keys: Iterable[str], address: Optional[dict]) -> Dict[str, ShippingQuote]:
        keys = list(vendor_keys)
        if not self.enabled or not keys:
            return {}

        data = self._post({"vendors": keys, "address": address or {}})
        quotes = data.get("quotes") or {}
        return {key: ShippingQuote.from_dict(quotes[key]) for key in keys if key in quotes}
