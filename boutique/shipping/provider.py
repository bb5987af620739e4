"""
Fournisseur de devis de livraison (fonction HTTP externe).
- POST {vendorId, items, destState, destCity} -> {vendorId, feeMinor}
- Toute erreur transport/HTTP/format est convertie en ShippingQuoteError.
"""
import logging
from typing import Dict, List, Optional

import httpx

from boutique.cart.models import MerchItem
from boutique.config import SHIPPING_QUOTE_URL, SUPABASE_ANON
from boutique.errors import ShippingQuoteError
from .models import ShippingQuote

logger = logging.getLogger(__name__)


class ShippingQuoteProvider:
    async def quote(
        self,
        vendor_id: str,
        items: List[MerchItem],
        dest_state: str,
        dest_city: Optional[str] = None,
    ) -> ShippingQuote:
        raise NotImplementedError


class HttpShippingQuoteProvider(ShippingQuoteProvider):
    def __init__(self, client: httpx.AsyncClient, url: str = "", api_key: str = ""):
        self.client = client
        self.url = url or SHIPPING_QUOTE_URL
        self.api_key = api_key or SUPABASE_ANON

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def quote(
        self,
        vendor_id: str,
        items: List[MerchItem],
        dest_state: str,
        dest_city: Optional[str] = None,
    ) -> ShippingQuote:
        if not self.url:
            raise ShippingQuoteError(vendor_id, "SHIPPING_QUOTE_URL non configurée")
        payload = {
            "vendorId": vendor_id,
            "items": [
                {"merchItemId": it.merch_item_id, "qty": it.qty, "size": it.size, "color": it.color}
                for it in items
            ],
            "destState": dest_state,
            "destCity": dest_city,
        }
        try:
            resp = await self.client.post(self.url, json=payload, headers=self._headers())
            resp.raise_for_status()
            data = resp.json() or {}
            # Certaines fonctions encapsulent la réponse dans {"data": {...}}
            body = data.get("data") if isinstance(data.get("data"), dict) else data
            fee = int(body["feeMinor"])
        except httpx.HTTPError as e:
            logger.warning("shipping.provider.quote http error vendor=%s err=%s", vendor_id, e)
            raise ShippingQuoteError(vendor_id) from e
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("shipping.provider.quote invalid payload vendor=%s err=%s", vendor_id, e)
            raise ShippingQuoteError(vendor_id, f"Réponse de devis invalide pour {vendor_id}") from e
        if fee < 0:
            raise ShippingQuoteError(vendor_id, f"Frais de livraison négatifs pour {vendor_id}")
        return ShippingQuote(vendor_id=vendor_id, fee_minor=fee)
