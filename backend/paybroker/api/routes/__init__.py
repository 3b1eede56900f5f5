from fastapi import APIRouter

from paybroker.api.routes import admin, checkout, gateways, health, pricing, webhooks

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(pricing.router, tags=["pricing"])
api_router.include_router(checkout.router, prefix="/checkout", tags=["checkout"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(gateways.router, prefix="/gateways", tags=["gateways"])
api_router.include_router(admin.router, tags=["admin"])
