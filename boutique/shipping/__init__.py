"""
Module 'shipping': regroupement par vendeur, devis et agrégation des frais de livraison.
"""

from .models import ShippingQuote, VendorShippingInfo, ShippingResolution
from .provider import ShippingQuoteProvider, HttpShippingQuoteProvider
from .quoter import ShippingQuoter, get_vendors_from_cart, calculate_total_shipping_fee

__all__ = [
    "ShippingQuote",
    "VendorShippingInfo",
    "ShippingResolution",
    "ShippingQuoteProvider",
    "HttpShippingQuoteProvider",
    "ShippingQuoter",
    "get_vendors_from_cart",
    "calculate_total_shipping_fee",
]
