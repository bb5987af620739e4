"""
Checkout Step Controller: machine à états linéaire tickets -> merch -> contact -> pay -> success.
- L'étape courante est dérivée du chemin (URL), jamais d'un état interne.
- Chaque étape a un prédicat de complétude qui conditionne l'avancée.
- Retour arrière toujours autorisé; pas de saut en avant: un lien direct vers
  une étape verrouillée redirige vers la première étape incomplète.
- Le CTA de l'étape pay est désactivé (pas masqué) si le prédicat échoue.
"""
from enum import Enum
from typing import Callable, Dict, Optional

from pydantic import BaseModel

from boutique.cart.store import CartStore

# module boutique.checkout.steps


class Step(str, Enum):
    TICKETS = "tickets"
    MERCH = "merch"
    CONTACT = "contact"
    PAY = "pay"
    SUCCESS = "success"


ORDER = [Step.TICKETS, Step.MERCH, Step.CONTACT, Step.PAY, Step.SUCCESS]

CTA_LABELS = {
    Step.TICKETS: "Continue → Merch",
    Step.MERCH: "Continue → Contact",
    Step.CONTACT: "Continue → Pay",
    Step.PAY: "Pay now",
    Step.SUCCESS: "Continue",
}


class NavigationDecision(BaseModel):
    requested: Step
    step: Step
    allowed: bool
    redirect_to: Optional[str] = None


class CtaState(BaseModel):
    label: str
    disabled: bool
    next_path: Optional[str] = None


def step_path(event_id: str, step: Step) -> str:
    return f"/buy/{event_id}/{step.value}"


def step_from_path(path: str) -> Step:
    """
    Dérive l'étape du chemin /buy/<eventId>/<step>.
    Seul le segment qui suit l'identifiant d'événement compte; tickets par défaut.
    """
    segments = [s for s in (path or "").split("?")[0].split("/") if s]
    if "buy" not in segments:
        return Step.TICKETS
    idx = segments.index("buy")
    if len(segments) <= idx + 2:
        return Step.TICKETS
    seg = segments[idx + 2]
    for step in ORDER:
        if seg == step.value:
            return step
    return Step.TICKETS


# --- prédicats ---
def tickets_complete(cart: CartStore) -> bool:
    return any(t.qty > 0 for t in cart.tickets)


def merch_complete(cart: CartStore) -> bool:
    # Étape optionnelle: le merch n'est jamais obligatoire
    return True


def contact_complete(cart: CartStore) -> bool:
    contact = cart.contact
    if not (contact.email and (contact.phone or "").strip()):
        return False
    if cart.has_merch:
        return cart.shipping is not None and cart.shipping.is_complete
    return True


def pay_complete(cart: CartStore) -> bool:
    return contact_complete(cart) and cart.terms_accepted is True


PREDICATES: Dict[Step, Callable[[CartStore], bool]] = {
    Step.TICKETS: tickets_complete,
    Step.MERCH: merch_complete,
    Step.CONTACT: contact_complete,
    Step.PAY: pay_complete,
}


def is_complete(cart: CartStore, step: Step) -> bool:
    predicate = PREDICATES.get(step)
    return predicate(cart) if predicate else False


def first_incomplete_step(cart: CartStore) -> Step:
    for step in ORDER[:-1]:
        if not is_complete(cart, step):
            return step
    return Step.PAY


def can_enter(cart: CartStore, step: Step, finalized: bool = False) -> bool:
    """Une étape est accessible si toutes les étapes précédentes sont complètes."""
    if step == Step.SUCCESS:
        return finalized
    idx = ORDER.index(step)
    return all(is_complete(cart, prev) for prev in ORDER[:idx])


def resolve_navigation(cart: CartStore, event_id: str, path: str, finalized: bool = False) -> NavigationDecision:
    requested = step_from_path(path)
    if can_enter(cart, requested, finalized=finalized):
        return NavigationDecision(requested=requested, step=requested, allowed=True)
    target = first_incomplete_step(cart)
    return NavigationDecision(
        requested=requested,
        step=target,
        allowed=False,
        redirect_to=step_path(event_id, target),
    )


def next_step(step: Step) -> Optional[Step]:
    idx = ORDER.index(step)
    return ORDER[idx + 1] if idx + 1 < len(ORDER) else None


def cta_state(cart: CartStore, event_id: str, step: Step) -> CtaState:
    """
    État du bouton principal de l'étape.
    - tickets/merch/contact: désactivé si le prédicat de l'étape échoue
    - pay: désactivé si email/téléphone manquants, CGV non acceptées,
      ou merch présent avec livraison incomplète
    """
    if step == Step.SUCCESS:
        return CtaState(label=CTA_LABELS[step], disabled=True)
    nxt = next_step(step)
    disabled = not is_complete(cart, step)
    next_path = None
    if nxt is not None and nxt != Step.SUCCESS:
        next_path = step_path(event_id, nxt)
    return CtaState(label=CTA_LABELS[step], disabled=disabled, next_path=next_path)
