"""Process entry point: read settings, build the service and serve HTTP."""

import sys

import uvicorn

from backup_exporter.api.app import create_app
from backup_exporter.configs.env_config import Env
from backup_exporter.errors import ConfigError
from backup_exporter.scheduler.service import ExporterService


def run() -> None:
    try:
        settings = Env.from_environ()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    service = ExporterService(settings)
    app = create_app(service)
    uvicorn.run(app, host=settings.EXPORTER_HOST, port=settings.EXPORTER_PORT, log_level="warning")


if __name__ == "__main__":
    run()
