"""FastAPI application wiring.

Created: 2026-02-14

Builds the app, starts the sync engine on startup and tears every
registered singleton down on shutdown.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from missionsync import lifecycle
from missionsync.api import router
from missionsync.config import Settings, get_settings
from missionsync.engine import get_sync_engine

logger = logging.getLogger(__name__)


def create_app(start_engine: bool = True) -> FastAPI:
    """Create the FastAPI app.

    Args:
        start_engine: Start watching on startup. Tests that only exercise
            the router pass False.
    """
    app = FastAPI(title="Mission Sync", version="0.3.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router, prefix="/api")

    @app.on_event("startup")
    async def startup_event():
        if start_engine:
            await get_sync_engine().start()

    @app.on_event("shutdown")
    async def shutdown_event():
        await lifecycle.shutdown_all()

    return app


def run_server(settings: Settings | None = None) -> None:
    """Serve the app with uvicorn (blocking)."""
    import uvicorn

    settings = settings or get_settings()
    get_sync_engine(settings)
    logger.info(
        "Mission sync on http://%s:%d (reading %s)",
        settings.host,
        settings.port,
        settings.root_path,
    )
    uvicorn.run(create_app(), host=settings.host, port=settings.port, log_config=None)
