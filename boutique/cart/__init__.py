"""
Module 'cart': modèles du panier et Cart Store.
"""

from .models import CartItem, TicketItem, MerchItem, ContactInfo, ShippingAddress, ShippingSelection, split_items
from .store import CartStore

__all__ = [
    "CartItem",
    "TicketItem",
    "MerchItem",
    "ContactInfo",
    "ShippingAddress",
    "ShippingSelection",
    "split_items",
    "CartStore",
]
