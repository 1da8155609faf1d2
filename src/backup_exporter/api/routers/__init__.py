"""HTTP router factory wiring metrics, health and scheduler endpoints."""

from fastapi import APIRouter

from . import health, metrics, scheduler


def create_router() -> APIRouter:
    router = APIRouter()
    router.include_router(metrics.router)
    router.include_router(health.router, prefix="/health")
    router.include_router(scheduler.router, prefix="/scheduler")
    return router
