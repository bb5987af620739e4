"""
Taxonomie d'erreurs du checkout.
- Chaque erreur porte un code stable, un status HTTP et un message lisible.
- Les handlers FastAPI (boutique.app_setup.exceptions) les convertissent en JSON.
- PaymentCancelled n'est pas une erreur: c'est une issue de paiement (voir payments.gateway).
"""
from typing import Any, Dict, Optional

from boutique.config import SUPPORT_EMAIL


class CheckoutError(Exception):
    code = "checkout_error"
    status_code = 400

    def __init__(self, message: str = "", **extra: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message, "code": self.code}
        payload.update(self.extra)
        return payload


class CheckoutValidationError(CheckoutError):
    code = "validation_error"
    status_code = 422


class CurrencyMismatchError(CheckoutValidationError):
    code = "inconsistent_currency"

    def __init__(self, expected: str, got: str):
        super().__init__(f"Devise incohérente dans le panier: {expected} / {got}")
        self.expected = expected
        self.got = got


# Nom historique côté front
InconsistentCurrency = CurrencyMismatchError


class CheckoutNotFound(CheckoutError):
    code = "checkout_not_found"
    status_code = 404


class ShippingQuoteError(CheckoutError):
    """Échec du devis d'un vendeur. Contenu par le quoter, jamais propagé au client."""
    code = "shipping_quote_failed"
    status_code = 502

    def __init__(self, vendor_id: str, message: str = ""):
        super().__init__(message or f"Devis indisponible pour le vendeur {vendor_id}")
        self.vendor_id = vendor_id


class PaymentGatewayError(CheckoutError):
    code = "payment_failed"
    status_code = 402


class FinalizeError(CheckoutError):
    """
    Paiement capturé mais commande non enregistrée.
    - Conserve la référence de paiement pour le support.
    - Jamais rejouée automatiquement.
    """
    code = "finalize_failed"
    status_code = 500

    def __init__(self, message: str, payment_reference: Optional[str] = None):
        support = f"Paiement reçu. Contactez {SUPPORT_EMAIL} avec la référence {payment_reference or 'inconnue'}."
        super().__init__(
            message,
            payment_reference=payment_reference,
            support=support,
        )
        self.payment_reference = payment_reference


class TotalsMismatchError(FinalizeError):
    code = "totals_mismatch"
    status_code = 409
