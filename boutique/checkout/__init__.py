"""
Module 'checkout': contexte explicite, contrôleur d'étapes et orchestration du paiement.
"""

from .context import CheckoutContext, CheckoutStore, PaySnapshot
from .steps import Step, step_from_path, can_enter, resolve_navigation, cta_state
from .service import CheckoutServices, refresh_pricing, ensure_pricing, enter_pay_step, handle_payment_outcome

__all__ = [
    "CheckoutContext",
    "CheckoutStore",
    "PaySnapshot",
    "Step",
    "step_from_path",
    "can_enter",
    "resolve_navigation",
    "cta_state",
    "CheckoutServices",
    "refresh_pricing",
    "ensure_pricing",
    "enter_pay_step",
    "handle_payment_outcome",
]
