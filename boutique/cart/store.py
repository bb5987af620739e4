# module boutique.cart.store
"""
Cart Store: état mutable du panier d'un checkout.
- Une instance par checkout (portée par CheckoutContext), jamais de singleton module.
- Fusion des lignes par (type, id, variante): la quantité est remplacée.
- Une seule devise par panier: un article d'une autre devise est refusé.
- revision: incrémentée à chaque mutation (détection des calculs périmés).
- shipping_revision: incrémentée seulement si le devis de livraison peut changer.
- lock(): panier gelé pendant qu'une session de paiement est ouverte.
"""
import logging
from typing import List, Optional, Union

from boutique.errors import CheckoutValidationError, CurrencyMismatchError
from .models import ContactInfo, MerchItem, ShippingSelection, TicketItem, split_items

logger = logging.getLogger(__name__)

Item = Union[TicketItem, MerchItem]


class CartStore:
    def __init__(self, event_id: Optional[str] = None):
        self.event_id = event_id
        self.items: List[Item] = []
        self.contact = ContactInfo()
        self.shipping: Optional[ShippingSelection] = None
        self.terms_accepted = False
        self.revision = 0
        self.shipping_revision = 0
        self._locked = False

    # --- lecture ---
    @property
    def currency(self) -> Optional[str]:
        return self.items[0].currency if self.items else None

    @property
    def tickets(self) -> List[TicketItem]:
        return split_items(self.items)[0]

    @property
    def merch(self) -> List[MerchItem]:
        return split_items(self.items)[1]

    @property
    def has_merch(self) -> bool:
        return any(isinstance(i, MerchItem) for i in self.items)

    @property
    def locked(self) -> bool:
        return self._locked

    def find(self, kind: str, item_id: str, variant_key: str = "") -> Optional[Item]:
        for it in self.items:
            if it.kind == kind and it.item_id == item_id and it.variant_key == variant_key:
                return it
        return None

    # --- verrou paiement ---
    def lock(self) -> None:
        self._locked = True

    def unlock(self) -> None:
        self._locked = False

    def _ensure_mutable(self) -> None:
        if self._locked:
            raise CheckoutValidationError("Panier verrouillé: un paiement est en cours")

    def _touch(self, affects_shipping: bool) -> None:
        self.revision += 1
        if affects_shipping:
            self.shipping_revision += 1

    # --- mutations ---
    def set_event_id(self, event_id: str) -> None:
        self._ensure_mutable()
        self.event_id = event_id
        self._touch(False)

    def add_item(self, item: Item) -> Item:
        """
        Ajoute ou fusionne une ligne.
        - Même (type, id, variante): la quantité de la ligne existante est remplacée.
        - Devise différente de celle du panier: CurrencyMismatchError.
        """
        self._ensure_mutable()
        current = self.currency
        if current and item.currency != current:
            raise CurrencyMismatchError(current, item.currency)

        existing = self.find(item.kind, item.item_id, item.variant_key)
        if existing is not None:
            idx = self.items.index(existing)
            self.items[idx] = item
        else:
            self.items.append(item)
        self._touch(isinstance(item, MerchItem))
        return item

    def update_qty(self, kind: str, item_id: str, qty: int, variant_key: str = "") -> Optional[Item]:
        """qty == 0 retire la ligne; une ligne inconnue est ignorée."""
        self._ensure_mutable()
        if qty < 0:
            raise CheckoutValidationError("Quantité négative")
        existing = self.find(kind, item_id, variant_key)
        if existing is None:
            logger.warning("cart.update_qty unknown line kind=%s id=%s variant=%s", kind, item_id, variant_key)
            return None
        if qty == 0:
            self.items.remove(existing)
            self._touch(kind == "merch")
            return None
        updated = existing.model_copy(update={"qty": qty})
        self.items[self.items.index(existing)] = updated
        self._touch(kind == "merch")
        return updated

    def remove_item(self, kind: str, item_id: str, variant_key: str = "") -> bool:
        self._ensure_mutable()
        existing = self.find(kind, item_id, variant_key)
        if existing is None:
            return False
        self.items.remove(existing)
        self._touch(kind == "merch")
        return True

    def set_contact(self, contact: ContactInfo) -> None:
        self._ensure_mutable()
        self.contact = contact
        self._touch(False)

    def set_shipping(self, shipping: Optional[ShippingSelection]) -> None:
        self._ensure_mutable()
        self.shipping = shipping
        self._touch(True)

    def set_terms_accepted(self, accepted: bool) -> None:
        self._ensure_mutable()
        self.terms_accepted = bool(accepted)
        self._touch(False)

    def clear(self) -> None:
        """Vide le panier (après finalisation). Ignore le verrou."""
        self.items = []
        self.contact = ContactInfo()
        self.shipping = None
        self.terms_accepted = False
        self._locked = False
        self._touch(True)
