"""
Module 'payments' (feature-first): point d'entrée public.
Réunit le client Stripe et l'adaptateur de passerelle (issues étiquetées).
"""

from .stripe_client import require_stripe, create_session, get_session, expire_session, parse_event
from .gateway import (
    StripeGateway,
    PaymentSession,
    PaymentSuccess,
    PaymentCancelled,
    PaymentFailed,
    PaymentOutcome,
    build_metadata,
    order_type_for,
)

__all__ = [
    # stripe
    "require_stripe",
    "create_session",
    "get_session",
    "expire_session",
    "parse_event",
    # gateway
    "StripeGateway",
    "PaymentSession",
    "PaymentSuccess",
    "PaymentCancelled",
    "PaymentFailed",
    "PaymentOutcome",
    "build_metadata",
    "order_type_for",
]
