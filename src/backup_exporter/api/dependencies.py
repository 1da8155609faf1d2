"""Shared FastAPI dependencies exposing the exporter service."""

from __future__ import annotations

from fastapi import HTTPException, Request

from backup_exporter.scheduler.service import ExporterService


def get_exporter_service(request: Request) -> ExporterService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Exporter service not ready")
    return service

