"""Health-check endpoint returning the current exporter status."""

from fastapi import APIRouter, Depends

from backup_exporter.api.dependencies import get_exporter_service
from backup_exporter.scheduler.service import ExporterService


router = APIRouter()


@router.get("/", tags=["health"])
async def healthcheck(service: ExporterService = Depends(get_exporter_service)) -> dict:
    return {
        "ok": True,
        "scheduler": service.status(),
    }
