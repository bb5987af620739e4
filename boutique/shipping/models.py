# module boutique.shipping.models
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from boutique.cart.models import MerchItem


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class ShippingQuote(_CamelModel):
    vendor_id: str
    fee_minor: int


class VendorShippingInfo(_CamelModel):
    """
    Regroupement dérivé (jamais persisté tel quel): un vendeur et ses lignes merch.
    - quote None: devis en attente (« calcul en cours »), à ne pas confondre avec 0.
    - degraded: le devis a échoué et a été remplacé par 0 (avertissement affiché).
    """
    vendor_id: str
    items: List[MerchItem]
    quote: Optional[ShippingQuote] = None
    degraded: bool = False
    warning: Optional[str] = None


class ShippingResolution(_CamelModel):
    """
    Résultat du calcul de livraison pour un panier.
    - status: none (pas de merch), pickup, pending (état manquant), quoted
    - total_minor None tant que le statut est pending
    """
    status: Literal["none", "pickup", "pending", "quoted"]
    vendors: List[VendorShippingInfo] = []
    total_minor: Optional[int] = 0
    warnings: List[str] = []

    @property
    def is_pending(self) -> bool:
        return self.total_minor is None
