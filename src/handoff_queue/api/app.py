"""FastAPI application factory and HTTP entry point."""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import HandoffSettings, get_settings
from ..queue import (
    AmbiguousReference,
    HandoffError,
    InvalidInput,
    NoTasksAvailable,
    NotFound,
    StoreUnavailable,
)
from ..service import HandoffQueue
from .routes import router

logger = logging.getLogger(__name__)

# Checked in order; InvalidTransition is caught by its InvalidInput base.
ERROR_STATUS: tuple[tuple[type[HandoffError], int], ...] = (
    (NotFound, 404),
    (AmbiguousReference, 409),
    (InvalidInput, 422),
    (StoreUnavailable, 503),
    (NoTasksAvailable, 200),
)


def status_for(exc: HandoffError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 400


def create_app(
    settings: Optional[HandoffSettings] = None,
    queue: Optional[HandoffQueue] = None,
) -> FastAPI:
    """Create the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Handoff Queue",
        description="Shared task queue for handing work between parties",
        version=__version__,
    )
    app.state.settings = settings
    app.state.queue = queue or HandoffQueue.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HandoffError)
    async def handoff_error_handler(request: Request, exc: HandoffError):
        status = status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content=exc.to_payload())

    app.include_router(router)

    @app.get("/")
    def root():
        return {"name": "Handoff Queue", "version": __version__}

    @app.get("/api/handoff/status")
    def status():
        return app.state.queue.status_snapshot()

    return app


def main() -> None:
    """Run the REST API with uvicorn."""
    import uvicorn

    from ..server import configure_logging

    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Launching handoff REST API on %s:%s", settings.api_host, settings.api_port)
    uvicorn.run(create_app(settings), host=settings.api_host, port=settings.api_port)


__all__ = ["ERROR_STATUS", "create_app", "main", "status_for"]
