"""Scheduler endpoints for inspecting jobs and requesting a collection."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict

from backup_exporter.api.dependencies import get_exporter_service
from backup_exporter.errors import CycleSkipped
from backup_exporter.scheduler.service import ExporterService


router = APIRouter()


class CollectionTriggered(BaseModel):
    job_id: str
    scheduled_job_id: str
    scheduled_for: datetime

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "job_id": "collect",
                "scheduled_job_id": "collect_manual",
                "scheduled_for": "2024-06-10T06:13:20Z",
            }
        }
    )


@router.get("/status", tags=["scheduler"])
async def scheduler_status(service: ExporterService = Depends(get_exporter_service)) -> dict:
    return service.status()


@router.get("/jobs", tags=["scheduler"])
async def list_jobs(service: ExporterService = Depends(get_exporter_service)) -> dict:
    jobs = list(service.list_jobs())
    return {"jobs": jobs, "count": len(jobs)}


@router.post(
    "/collect",
    tags=["scheduler"],
    status_code=status.HTTP_202_ACCEPTED,
    response_model=CollectionTriggered,
)
async def trigger_collection(service: ExporterService = Depends(get_exporter_service)) -> CollectionTriggered:
    try:
        result = service.trigger_collection()
    except CycleSkipped as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return CollectionTriggered(**result)
