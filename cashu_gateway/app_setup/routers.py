"""
Registre central des routers (API v1 Cashu, health).
- /api/v1/cashu/checkout, /api/v1/cashu/confirm-melt-quote
- /api/v1/cashu/health, /api/v1/cashu/health/mint
"""
from fastapi import FastAPI
from cashu_gateway.checkout import views as checkout_views
from cashu_gateway.settlement import views as settlement_views
from cashu_gateway.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(checkout_views.router)
    app.include_router(settlement_views.router)
    # Health & monitoring
    app.include_router(health_router)
