"""
Registre central des routers (API v1, health).
- API v1: payments (checkout, confirm, webhook), carts, orders
- Health: health_router
"""
from fastapi import FastAPI

from boutique.carts import views as carts_views
from boutique.health.router import router as health_router
from boutique.orders import views as orders_views
from boutique.payments import views as payments_views

def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(payments_views.router)
    app.include_router(carts_views.router)
    app.include_router(orders_views.router)
    # Health & monitoring
    app.include_router(health_router)
