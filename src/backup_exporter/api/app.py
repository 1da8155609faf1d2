"""FastAPI application that serves the exposition and boots the exporter service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from backup_exporter import __version__
from backup_exporter.api.routers import create_router
from backup_exporter.scheduler.service import ExporterService


def create_app(service: ExporterService) -> FastAPI:
    """Build the HTTP app around ``service``.

    :param service: Exporter service started and stopped with the app lifespan.
    :return: Configured :class:`FastAPI` application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await service.startup()
        try:
            yield
        finally:
            await service.shutdown()

    app = FastAPI(title="Backup Exporter", version=__version__, lifespan=lifespan)
    app.state.service = service
    app.include_router(create_router())
    return app
