# module boutique.cart.models
"""
Modèles du panier checkout (pydantic v2).
- CartItem: union discriminée sur "_type" (ticket | merch).
- Montants en unités mineures (int), jamais en flottants.
- Les alias camelCase correspondent au JSON échangé avec le front.
"""
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class TicketItem(_CamelModel):
    kind: Literal["ticket"] = Field(default="ticket", alias="_type")
    ticket_type_id: str = Field(min_length=1)
    name: str = ""
    qty: int = Field(gt=0)
    unit_price_minor: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    group_size: Optional[int] = Field(default=None, ge=1)
    admit_type: Optional[Literal["general", "vip", "backstage"]] = None
    transfer_fees_to_guest: bool = False

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def item_id(self) -> str:
        return self.ticket_type_id

    @property
    def variant_key(self) -> str:
        return ""


class MerchItem(_CamelModel):
    kind: Literal["merch"] = Field(default="merch", alias="_type")
    merch_item_id: str = Field(min_length=1)
    name: str = ""
    qty: int = Field(gt=0)
    unit_price_minor: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    size: Optional[str] = None
    color: Optional[str] = None
    brand_id: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator("color", mode="before")
    @classmethod
    def _color_label(cls, v: Any) -> Any:
        # Le front envoie parfois {label, hex}: on ne garde que le libellé
        if isinstance(v, dict):
            return v.get("label") or None
        return v

    @property
    def item_id(self) -> str:
        return self.merch_item_id

    @property
    def variant_key(self) -> str:
        return f"{self.size or ''}-{self.color or ''}"


CartItem = Annotated[Union[TicketItem, MerchItem], Field(discriminator="kind")]


class ContactInfo(_CamelModel):
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()


class ShippingAddress(_CamelModel):
    state: Optional[str] = None
    city: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None


class ShippingSelection(_CamelModel):
    method: Literal["pickup", "delivery"]
    address: Optional[ShippingAddress] = None

    @property
    def destination_state(self) -> Optional[str]:
        state = (self.address.state if self.address else None) or ""
        return state.strip() or None

    @property
    def destination_city(self) -> Optional[str]:
        city = (self.address.city if self.address else None) or ""
        return city.strip() or None

    @property
    def is_complete(self) -> bool:
        """Pickup est toujours complet; delivery exige un état de destination."""
        if self.method == "pickup":
            return True
        return self.destination_state is not None


def split_items(items: List[Union[TicketItem, MerchItem]]):
    """Sépare les lignes (tickets, merch) en conservant l'ordre."""
    tickets = [i for i in items if isinstance(i, TicketItem)]
    merch = [i for i in items if isinstance(i, MerchItem)]
    return tickets, merch
