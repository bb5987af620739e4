"""
Shipping Quoter: regroupement par vendeur, devis concurrents, agrégation.
- Seules les lignes merch participent (regroupées par brand_id).
- Pickup: court-circuit, frais 0 pour chaque vendeur, aucun appel réseau.
- Delivery sans état: devis différé (statut pending, total None).
- Fan-out asyncio.gather avec isolation par vendeur et timeout par vendeur:
  un vendeur en échec est dégradé à 0 avec un avertissement, les autres continuent.
- Cache par (vendeur, état, ville, empreinte des lignes): un changement
  de panier ou d'adresse produit une nouvelle clé.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from boutique.cart.models import MerchItem
from boutique.config import SHIPPING_QUOTE_TIMEOUT_SECONDS
from boutique.errors import ShippingQuoteError
from .models import ShippingQuote, ShippingResolution, VendorShippingInfo
from .provider import ShippingQuoteProvider

logger = logging.getLogger(__name__)

# module boutique.shipping.quoter


def get_vendors_from_cart(items: Sequence) -> List[VendorShippingInfo]:
    """Partitionne les lignes merch par brand_id (ordre de première apparition)."""
    grouped: Dict[str, List[MerchItem]] = {}
    for it in items or []:
        if not isinstance(it, MerchItem):
            continue
        if not it.brand_id:
            logger.warning("shipping.get_vendors_from_cart merch without brandId merch_item_id=%s", it.merch_item_id)
            continue
        grouped.setdefault(it.brand_id, []).append(it)
    return [VendorShippingInfo(vendor_id=vid, items=lines) for vid, lines in grouped.items()]


def calculate_total_shipping_fee(vendors: Sequence[VendorShippingInfo]) -> Optional[int]:
    """Somme des devis; None si au moins un vendeur est encore en attente."""
    total = 0
    for v in vendors:
        if v.quote is None:
            return None
        total += v.quote.fee_minor
    return total


def _items_fingerprint(items: Sequence[MerchItem]) -> str:
    parts = sorted(f"{it.merch_item_id}:{it.variant_key}:{it.qty}" for it in items)
    return "|".join(parts)


class ShippingQuoter:
    def __init__(self, provider: ShippingQuoteProvider, timeout_seconds: Optional[float] = None):
        self.provider = provider
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else SHIPPING_QUOTE_TIMEOUT_SECONDS
        self._cache: Dict[Tuple[str, str, str, str], ShippingQuote] = {}

    def clear_cache(self) -> None:
        self._cache.clear()

    async def quote_shipping_for_vendor(
        self,
        vendor: VendorShippingInfo,
        state: str,
        city: Optional[str] = None,
    ) -> ShippingQuote:
        """Un devis pour un vendeur. Lève ShippingQuoteError (timeout compris); les échecs ne sont pas mis en cache."""
        key = (vendor.vendor_id, state.strip().lower(), (city or "").strip().lower(), _items_fingerprint(vendor.items))
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        try:
            quote = await asyncio.wait_for(
                self.provider.quote(vendor.vendor_id, vendor.items, state, city),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ShippingQuoteError(vendor.vendor_id, f"Délai dépassé pour le devis du vendeur {vendor.vendor_id}") from e
        except ShippingQuoteError:
            raise
        except Exception as e:
            # Erreur inattendue d'un fournisseur: convertie dans la taxonomie
            raise ShippingQuoteError(vendor.vendor_id) from e
        self._cache[key] = quote
        return quote

    async def _quote_isolated(self, vendor: VendorShippingInfo, state: str, city: Optional[str]) -> VendorShippingInfo:
        try:
            quote = await self.quote_shipping_for_vendor(vendor, state, city)
            return vendor.model_copy(update={"quote": quote, "degraded": False, "warning": None})
        except ShippingQuoteError as e:
            logger.warning("shipping.quote degraded vendor=%s state=%s err=%s", vendor.vendor_id, state, e.message)
            return vendor.model_copy(update={
                "quote": ShippingQuote(vendor_id=vendor.vendor_id, fee_minor=0),
                "degraded": True,
                "warning": e.message,
            })

    async def quote_shipping_for_all_vendors(
        self,
        vendors: Sequence[VendorShippingInfo],
        state: str,
        city: Optional[str] = None,
    ) -> List[VendorShippingInfo]:
        """Devis concurrents; ne lève jamais pour un échec vendeur."""
        if not vendors:
            return []
        results = await asyncio.gather(*(self._quote_isolated(v, state, city) for v in vendors))
        return list(results)

    async def resolve(self, cart) -> ShippingResolution:
        """Calcule la livraison d'un panier selon sa sélection (pickup/delivery)."""
        vendors = get_vendors_from_cart(cart.items)
        if not cart.has_merch:
            return ShippingResolution(status="none", vendors=[], total_minor=0)

        shipping = cart.shipping
        if shipping is not None and shipping.method == "pickup":
            zeroed = [
                v.model_copy(update={"quote": ShippingQuote(vendor_id=v.vendor_id, fee_minor=0)})
                for v in vendors
            ]
            return ShippingResolution(status="pickup", vendors=zeroed, total_minor=0)

        state = shipping.destination_state if shipping is not None else None
        if state is None:
            return ShippingResolution(status="pending", vendors=vendors, total_minor=None)

        quoted = await self.quote_shipping_for_all_vendors(vendors, state, shipping.destination_city)
        warnings = [v.warning for v in quoted if v.degraded and v.warning]
        return ShippingResolution(
            status="quoted",
            vendors=quoted,
            total_minor=calculate_total_shipping_fee(quoted),
            warnings=warnings,
        )
