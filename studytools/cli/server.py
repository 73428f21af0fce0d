from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from studytools.api.deps import build_sweeper, get_config, get_holding_area, get_workspace
from studytools.api.error_handlers import install_error_handlers
from studytools.api.routes_downloads import router as downloads_router
from studytools.api.routes_health import router as health_router
from studytools.api.routes_tools import router as tools_router
from studytools.config.schema import AppConfig
from studytools.utils.log_config import configure_logging


def create_app(config: AppConfig | None = None, *, start_sweeper: bool = True) -> FastAPI:
    config = config or get_config()
    configure_logging(config.server.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        overrides = app.dependency_overrides
        workspace = overrides.get(get_workspace, get_workspace)()
        holding = overrides.get(get_holding_area, get_holding_area)()
        sweeper = build_sweeper(config, workspace, holding)
        app.state.sweeper = sweeper
        if start_sweeper:
            # The first tick runs immediately and clears leftovers from a previous run.
            sweeper.start()
        try:
            yield
        finally:
            await sweeper.stop()

    app = FastAPI(
        title="Student Hub File Tools",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )
    install_error_handlers(app, expose_diagnostics=not config.server.is_production)
    app.include_router(health_router)
    app.include_router(downloads_router)
    app.include_router(tools_router)
    return app


app = create_app()
