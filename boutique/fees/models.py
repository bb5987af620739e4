# module boutique.fees.models
from typing import List, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, frozen=True)


class LineWithFee(_CamelModel):
    """Détail par ligne: sous-total, frais plateforme et répartition acheteur/organisateur."""
    kind: Literal["ticket", "merch"]
    item_id: str
    name: str = ""
    qty: int
    unit_price_minor: int
    line_subtotal_minor: int
    labeld_fee_minor: int
    fee_charged_to_buyer_minor: int
    fee_absorbed_by_org_minor: int
    line_buyer_total_minor: int


class FeeTotals(_CamelModel):
    """
    Totaux calculés (TotalsWithLabeldFee).
    - total_due_minor = items_subtotal_minor + buyer_fees_minor + shipping_fee_minor
    - absorbed_fees_minor est informatif (jamais facturé à l'acheteur)
    """
    currency: str
    items_subtotal_minor: int = 0
    buyer_fees_minor: int = 0
    absorbed_fees_minor: int = 0
    shipping_fee_minor: int = 0
    total_due_minor: int = 0
    lines: List[LineWithFee] = []

    def with_shipping(self, shipping_fee_minor: int) -> "FeeTotals":
        """Retourne une copie intégrant les frais de livraison dans le total dû."""
        shipping = int(shipping_fee_minor or 0)
        return self.model_copy(update={
            "shipping_fee_minor": shipping,
            "total_due_minor": self.items_subtotal_minor + self.buyer_fees_minor + shipping,
        })
