"""
API v1 package.

Aggregates the v1 routers into a single router mounted under the API prefix.
"""

from fastapi import APIRouter

from makoexpress.api.v1.admin import router as admin_router
from makoexpress.api.v1.drivers import router as drivers_router
from makoexpress.api.v1.orders import router as orders_router
from makoexpress.api.v1.ratings import router as ratings_router
from makoexpress.api.v1.webhooks import router as webhooks_router

api_router = APIRouter()
api_router.include_router(orders_router)
api_router.include_router(drivers_router)
api_router.include_router(admin_router)
api_router.include_router(ratings_router)
api_router.include_router(webhooks_router)

__all__ = ["api_router"]
