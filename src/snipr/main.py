"""
FastAPI Application Entry Point.

Creates and configures the snipr application: logging, routes, error
handlers, request tracing and, for the local storage backend, the
/media mount that serves stored audio.

Usage:
    # Run with uvicorn
    uvicorn snipr.main:app --host 0.0.0.0 --port 8000

    # Or use the module directly
    python -m uvicorn snipr.main:app --reload
"""
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles

from snipr.api.dependencies import get_settings
from snipr.api.routes import register_error_handlers, router
from snipr.core.logging import configure_logging, get_logger, info, set_trace_id
from snipr.services import reset_service

_LOG = get_logger("snipr.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    info(_LOG, "app_started", service=app.title)
    yield
    reset_service()
    info(_LOG, "app_stopped")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory function:
        1. Configures structured logging (SNIPR_LOG_LEVEL)
        2. Registers routes and JSON error handlers
        3. Stamps every request with a trace id (X-Request-Id)
        4. Mounts /media when audio is stored on local disk

    Returns:
        FastAPI: Configured application instance ready to serve requests.
    """
    configure_logging()

    settings = get_settings()
    app = FastAPI(title=settings.service_name, lifespan=lifespan)

    app.include_router(router)
    register_error_handlers(app)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        rid = (request.headers.get("X-Request-Id") or str(uuid.uuid4()))[:12]
        set_trace_id(rid)
        response = await call_next(request)
        response.headers["X-Request-Id"] = rid
        return response

    storage = settings.get_pipeline_config().storage
    if storage.backend == "local":
        Path(storage.base_dir).mkdir(parents=True, exist_ok=True)
        app.mount("/media", StaticFiles(directory=storage.base_dir, check_dir=True), name="media")

    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()
