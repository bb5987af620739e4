"""
Calcul des frais plateforme (fonction pure, aucun effet de bord).
- Arithmétique entière uniquement, en unités mineures (kobo/cents).
- Le barème est une politique injectable (FeePolicy); la politique par défaut
  vient de la configuration (pourcentage en points de base + fixe par devise).
- Seules les lignes ticket portent des frais; ils sont facturés à l'acheteur
  uniquement si transfer_fees_to_guest est vrai, sinon absorbés par l'organisateur.
"""
from typing import Iterable, List, Optional, Sequence, Union

from boutique.cart.models import MerchItem, TicketItem
from boutique.config import (
    DEFAULT_CURRENCY,
    PLATFORM_FEE_FLAT_CURRENCIES,
    PLATFORM_FEE_FLAT_MINOR,
    PLATFORM_FEE_PERCENT_BPS,
)
from boutique.errors import CurrencyMismatchError
from .models import FeeTotals, LineWithFee

Item = Union[TicketItem, MerchItem]

# module boutique.fees.calculator


class FeePolicy:
    """Interface du barème: retourne les frais bruts (unités mineures) d'une ligne ticket."""

    def fee_for_line(self, line_subtotal_minor: int, currency: str) -> int:
        raise NotImplementedError


class PercentPlusFlatPolicy(FeePolicy):
    def __init__(self, percent_bps: int, flat_minor: int = 0, flat_currencies: Sequence[str] = ("NGN",)):
        if percent_bps < 0 or flat_minor < 0:
            raise ValueError("Le barème ne peut pas être négatif")
        self.percent_bps = int(percent_bps)
        self.flat_minor = int(flat_minor)
        self.flat_currencies = {c.upper() for c in flat_currencies}

    def fee_for_line(self, line_subtotal_minor: int, currency: str) -> int:
        # Arrondi au plus proche, demi vers le haut (montants positifs)
        percent = (line_subtotal_minor * self.percent_bps + 5000) // 10000
        flat = self.flat_minor if currency.upper() in self.flat_currencies else 0
        return percent + flat

    def __repr__(self) -> str:
        return f"PercentPlusFlatPolicy(percent_bps={self.percent_bps}, flat_minor={self.flat_minor})"


def default_policy() -> FeePolicy:
    return PercentPlusFlatPolicy(
        PLATFORM_FEE_PERCENT_BPS,
        PLATFORM_FEE_FLAT_MINOR,
        PLATFORM_FEE_FLAT_CURRENCIES,
    )


def _check_currency(items: Sequence[Item]) -> str:
    currency = items[0].currency
    for it in items[1:]:
        if it.currency != currency:
            raise CurrencyMismatchError(currency, it.currency)
    return currency


def calculate_fees(
    items: Iterable[Item],
    policy: Optional[FeePolicy] = None,
    shipping_fee_minor: int = 0,
) -> FeeTotals:
    """
    Calcule sous-total, frais acheteur, frais absorbés et détail par ligne.
    - Panier vide: totaux à zéro dans la devise par défaut.
    - Devises mélangées: CurrencyMismatchError.
    - shipping_fee_minor est ajouté au total dû (0 par défaut).
    """
    items = list(items or [])
    if not items:
        return FeeTotals(currency=DEFAULT_CURRENCY).with_shipping(shipping_fee_minor)

    currency = _check_currency(items)
    policy = policy or default_policy()

    subtotal = 0
    buyer_fees = 0
    absorbed = 0
    lines: List[LineWithFee] = []
    for it in items:
        line_subtotal = it.unit_price_minor * it.qty
        raw_fee = policy.fee_for_line(line_subtotal, currency) if isinstance(it, TicketItem) else 0
        to_buyer = isinstance(it, TicketItem) and it.transfer_fees_to_guest is True
        charged = raw_fee if to_buyer else 0
        absorbed_line = 0 if to_buyer else raw_fee

        subtotal += line_subtotal
        buyer_fees += charged
        absorbed += absorbed_line
        lines.append(LineWithFee(
            kind=it.kind,
            item_id=it.item_id,
            name=it.name,
            qty=it.qty,
            unit_price_minor=it.unit_price_minor,
            line_subtotal_minor=line_subtotal,
            labeld_fee_minor=raw_fee,
            fee_charged_to_buyer_minor=charged,
            fee_absorbed_by_org_minor=absorbed_line,
            line_buyer_total_minor=line_subtotal + charged,
        ))

    totals = FeeTotals(
        currency=currency,
        items_subtotal_minor=subtotal,
        buyer_fees_minor=buyer_fees,
        absorbed_fees_minor=absorbed,
        lines=lines,
    )
    return totals.with_shipping(shipping_fee_minor)


def format_currency(amount_minor: int, currency: str = "NGN") -> str:
    """
    Formatage d'affichage:
    - NGN: symbole ₦, sans décimales (ex: ₦31,750)
    - autres: symbole $ (USD) ou code devise, deux décimales
    """
    currency = (currency or "NGN").upper()
    if currency == "NGN":
        naira = (int(amount_minor) + 50) // 100
        return f"₦{naira:,}"
    whole, cents = divmod(int(amount_minor), 100)
    prefix = "$" if currency == "USD" else f"{currency} "
    return f"{prefix}{whole:,}.{cents:02d}"
