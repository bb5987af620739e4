"""
Registre central des routers (API v1 checkout/payments/commandes, health).
"""
from fastapi import FastAPI
from boutique.checkout import views as checkout_views
from boutique.payments import views as payments_views
from boutique.commandes import views as commandes_views
from boutique.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(checkout_views.router)
    app.include_router(payments_views.router)
    app.include_router(commandes_views.router)
    # Health & monitoring
    app.include_router(health_router)
