"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import bins, health, schedules, vehicles
from .config import settings
from .context import AppContext, build_context

logger = logging.getLogger(__name__)


def create_app(context: Optional[AppContext] = None, background_refresh: Optional[bool] = None) -> FastAPI:
    """Build the application.

    ``context`` replaces the collaborators wired from settings; the periodic
    refresh runs when ``background_refresh`` (default: a non-zero
    ``refresh_interval_minutes``) is true.
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    run_background = settings.refresh_interval_minutes > 0 if background_refresh is None else background_refresh

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.context is None:
            app.state.context = await build_context()
        coordinator = app.state.context.coordinator

        tasks: list[asyncio.Task] = []
        if settings.refresh_on_startup:
            tasks.append(asyncio.create_task(coordinator.sync_and_refresh()))
        if run_background:
            interval = settings.refresh_interval_minutes * 60
            logger.info(f"Scheduling refresh every {settings.refresh_interval_minutes} minutes")
            tasks.append(asyncio.create_task(coordinator.run_periodically(interval)))
        try:
            yield
        finally:
            for task in tasks:
                task.cancel()
            for task in tasks:
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    app = FastAPI(
        title=settings.app_name,
        root_path="",
        lifespan=lifespan,
    )
    app.state.context = context
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Root endpoint for diagnostics
    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(bins.router, prefix=settings.api_prefix)
    app.include_router(vehicles.router, prefix=settings.api_prefix)
    app.include_router(schedules.router, prefix=settings.api_prefix)
    return app


app = create_app()
