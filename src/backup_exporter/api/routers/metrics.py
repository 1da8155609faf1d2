"""Prometheus text exposition endpoint."""

from fastapi import APIRouter, Depends, Response

from backup_exporter.api.dependencies import get_exporter_service
from backup_exporter.scheduler.service import ExporterService


router = APIRouter()


@router.get("/metrics", tags=["metrics"])
async def metrics(service: ExporterService = Depends(get_exporter_service)) -> Response:
    registry = service.registry
    return Response(content=registry.render() + service.stats.render(), media_type=registry.content_type)
