"""
API routes module.
"""

from fastapi import APIRouter

from shipping.api.routes import (
    coverage,
    deliveries,
    delivery_routes,
    health,
    providers,
    tasks,
    vehicles,
    webhooks,
)

# Main API router (mounted at /api/v1)
api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(deliveries.router)
api_router.include_router(tasks.router)
api_router.include_router(coverage.router)
api_router.include_router(providers.router)
api_router.include_router(vehicles.router)
api_router.include_router(delivery_routes.router)
api_router.include_router(webhooks.router)
