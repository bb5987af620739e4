# boutique.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale du service checkout.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe, devis de livraison)
- Expose la politique de frais plateforme (pourcentage en points de base + fixe)
- Fournit les chemins de retour du checkout et l'adresse du support
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int) -> int:
    raw = _clean_env(os.getenv(name) or "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default

def _float_env(name: str, default: float) -> float:
    raw = _clean_env(os.getenv(name) or "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default

# Supabase: URL et clés (anon/service)
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# CORS / hosts
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

# Stripe: clé secrète et secret webhook
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")

BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000").rstrip("/")

# Retours Stripe Checkout (gérés par l'API) puis page de succès côté front
CHECKOUT_RETURN_PATH = os.getenv("CHECKOUT_RETURN_PATH", "/api/v1/payments/return")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/api/v1/payments/cancel")
CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/buy/{event_id}/success")

# Devise et frais plateforme (montants en unités mineures, pourcentage en points de base)
DEFAULT_CURRENCY = _clean_env(os.getenv("DEFAULT_CURRENCY") or "NGN").upper()
PLATFORM_FEE_PERCENT_BPS = _int_env("PLATFORM_FEE_PERCENT_BPS", 600)
PLATFORM_FEE_FLAT_MINOR = _int_env("PLATFORM_FEE_FLAT_MINOR", 10000)
PLATFORM_FEE_FLAT_CURRENCIES = [
    c.strip().upper() for c in os.getenv("PLATFORM_FEE_FLAT_CURRENCIES", "NGN").split(",") if c.strip()
]

# Devis de livraison (fonction HTTP externe)
SHIPPING_QUOTE_URL = _clean_env(os.getenv("SHIPPING_QUOTE_URL") or "")
if not SHIPPING_QUOTE_URL and SUPABASE_URL:
    SHIPPING_QUOTE_URL = f"{SUPABASE_URL}/functions/v1/quote-shipping"
SHIPPING_QUOTE_TIMEOUT_SECONDS = _float_env("SHIPPING_QUOTE_TIMEOUT_SECONDS", 8.0)

SUPPORT_EMAIL = _clean_env(os.getenv("SUPPORT_EMAIL") or "support@example.com")

# Rétention des checkouts en mémoire (secondes sans activité)
# - finalisés: le résultat reste lisible pour les retours/webhooks tardifs
# - autres: couvre l'expiration des sessions Stripe (24h)
CHECKOUT_DONE_TTL_SECONDS = _int_env("CHECKOUT_DONE_TTL_SECONDS", 3600)
CHECKOUT_IDLE_TTL_SECONDS = _int_env("CHECKOUT_IDLE_TTL_SECONDS", 86400)
