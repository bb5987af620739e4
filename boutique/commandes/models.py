# module boutique.commandes.models
"""
Modèles de commande (finalisation) et lignes de fulfillment.
- FinalizeLineItem: ligne normalisée envoyée à la finalisation (sans nom ni prix).
- FinalizeRequest: charge utile complète d'une finalisation.
- FulfillmentLine: une ligne par article merch d'un vendeur.
"""
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class FulfillmentStatus(str, Enum):
    UNFULFILLED = "unfulfilled"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class FinalizeState(str, Enum):
    IDLE = "idle"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class FinalizeLineItem(_CamelModel):
    kind: Literal["ticket", "merch"] = Field(alias="_type")
    ticket_type_id: Optional[str] = None
    merch_item_id: Optional[str] = None
    qty: int = Field(gt=0)
    size: Optional[str] = None
    color: Optional[str] = None

    @property
    def item_id(self) -> str:
        return (self.ticket_type_id if self.kind == "ticket" else self.merch_item_id) or ""

    @property
    def variant_key(self) -> str:
        if self.kind == "ticket":
            return ""
        return f"{self.size or ''}-{self.color or ''}"

    def canonical(self) -> Dict[str, Any]:
        """Représentation canonique (alias, sans champs vides)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ClientTotals(_CamelModel):
    currency: str
    items_subtotal_minor: int
    fees_minor: int
    shipping_minor: int = 0
    total_minor: int


class ProviderRef(_CamelModel):
    init_ref: str
    verify_ref: str


class DeliverTo(_CamelModel):
    email: str
    phone: Optional[str] = None


class OrderShipping(_CamelModel):
    method: Optional[Literal["pickup", "delivery"]] = None
    address: Optional[Dict[str, Any]] = None
    fee_minor: int = 0


class FinalizeRequest(_CamelModel):
    idempotency_key: str
    event_id: str
    buyer_user_id: Optional[str] = None
    deliver_to: DeliverTo
    provider: str = "stripe"
    provider_ref: ProviderRef
    line_items: List[FinalizeLineItem]
    client_totals: ClientTotals
    shipping: Optional[OrderShipping] = None

    def to_order_row(self) -> Dict[str, Any]:
        """Document 'orders' à persister (status initial: paid)."""
        row = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        row["lineItems"] = [li.canonical() for li in self.line_items]
        row["status"] = OrderStatus.PAID.value
        return row


class FulfillmentLine(_CamelModel):
    order_id: str
    line_key: str
    vendor_id: str
    qty_ordered: int
    variant: Optional[str] = None
    status: FulfillmentStatus = FulfillmentStatus.UNFULFILLED
    shipping: OrderShipping = OrderShipping()


class FinalizeResult(_CamelModel):
    order_id: str
    redirect_path: str
    reused: bool = False
    fulfillment_incomplete: bool = False
