"""
Lifespan FastAPI: initialisation/arrêt des ressources partagées.
- Crée le client httpx partagé (devis de livraison), le registre des checkouts
  et les services (quoter, passerelle Stripe, barème de frais).
- Initialise FastAPILimiter (Redis) avec options de test (fakeredis).
- Variables d'environnement supportées:
  - DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1: désactive complètement (tests)
  - USE_FAKE_REDIS_FOR_TESTS=1: utilise fakeredis (tests)
  - LOCAL_RATE_LIMIT_FALLBACK=1: active un fallback local si l'init échoue
"""
import os
import logging
from contextlib import asynccontextmanager

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter

from boutique.checkout.context import CheckoutStore
from boutique.checkout.service import CheckoutServices
from boutique.config import SHIPPING_QUOTE_TIMEOUT_SECONDS
from boutique.fees.calculator import default_policy
from boutique.payments.gateway import StripeGateway
from boutique.shipping.provider import HttpShippingQuoteProvider
from boutique.shipping.quoter import ShippingQuoter

try:
    from fakeredis.aioredis import FakeRedis  # tests only
except ImportError:
    FakeRedis = None

logger = logging.getLogger("uvicorn.error")

async def _init_rate_limiter(app: FastAPI) -> None:
    """
    Configure le rate limiting et gère les fallbacks.
    - En cas d'échec de Redis et sans fallback, le rate limiting est désactivé proprement.
    """
    if os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
        app.state.rate_limit_enabled = False
        logger.info("Rate limiting disabled by DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS")
        return
    try:
        if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
            if not FakeRedis:
                raise RuntimeError("USE_FAKE_REDIS_FOR_TESTS=1 mais fakeredis n'est pas installé.")
            r = FakeRedis(decode_responses=True)
        else:
            redis_url = os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0")
            r = aioredis.from_url(redis_url, encoding="utf-8", decode_responses=True)
        await FastAPILimiter.init(r)
        app.state.rate_limit_enabled = True
        logger.info("Rate limiting enabled")
    except Exception as e:
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            app.state.rate_limit_enabled = True
            logger.warning("Rate limiting falling back to local in-memory due to init error: %s", e)
        else:
            app.state.rate_limit_enabled = False
            logger.warning("Rate limiting disabled due to init error: %s", e)

@asynccontextmanager
async def lifespan(app: FastAPI):
    await _init_rate_limiter(app)

    http_client = httpx.AsyncClient(timeout=httpx.Timeout(SHIPPING_QUOTE_TIMEOUT_SECONDS))
    # Les tests peuvent pré-installer leurs propres services avant le démarrage
    if getattr(app.state, "checkout_services", None) is None:
        app.state.checkout_services = CheckoutServices(
            store=CheckoutStore(),
            quoter=ShippingQuoter(HttpShippingQuoteProvider(http_client)),
            gateway=StripeGateway(),
            policy=default_policy(),
        )
    logger.info("Checkout services ready")
    try:
        yield
    finally:
        await http_client.aclose()
