"""Punto de entrada principal para la aplicación FastAPI."""

import logging
from pathlib import Path

from fastapi import FastAPI

from app.api.routes.health import router as health_router
from app.channels.event_streams.router import router as event_streams_router
from app.core.config import settings
from app.core.logging import configure_logging, get_logger, resolve_log_level
from app.core.middleware import RequestLoggingMiddleware


def create_app() -> FastAPI:
    """Crea y configura la instancia de FastAPI."""
    default_log_level = logging.DEBUG if settings.environment != "production" else logging.INFO
    log_level = resolve_log_level(settings.log_level, default=default_log_level)
    per_logger_files: dict[str, str] | None = None
    if settings.log_file_path:
        log_dir = Path(settings.log_file_path).parent
        per_logger_files = {
            "app.request": str(log_dir / "request.log"),
            "app.channels.event_streams": str(log_dir / "event_streams.log"),
        }

    configure_logging(
        level=log_level,
        log_file=settings.log_file_path,
        per_logger_files=per_logger_files,
    )

    app = FastAPI(title="Event Streams Reporting API", version="0.1.0")

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router)
    app.include_router(event_streams_router)

    get_logger("app").info(
        "app.started",
        extra={
            "environment": settings.environment,
            "schema": settings.reporting_schema,
            "table": settings.conversations_table,
        },
    )
    return app


app = create_app()
