"""FastAPI backend for Cadence: generation jobs, video budgets and usage."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from cadence import __version__
from cadence.config import Settings, get_settings
from cadence.services import build_services

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


class HealthResponse(BaseModel):
    status: str
    data_dir: str


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the API. ``settings=None`` uses the environment and the process-wide stores."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = build_services(settings)
        app.state.services = services
        removed = services.tracker.reap_expired()
        if removed:
            logger.warning("Marked %d abandoned jobs failed at startup", len(removed))
        yield
        await services.aclose()

    config = settings or get_settings()
    app = FastAPI(
        title="Cadence API",
        description="Generation job tracking, video budgets and API usage.",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    # -----------------------------------------------------------------------
    # CORS
    # -----------------------------------------------------------------------
    cors_origins = config.cors_origin_list
    logger.info("CORS configured for origins: %s", cors_origins)
    cors_kw: dict = {
        "allow_origins": cors_origins,
        "allow_credentials": True,
        "allow_methods": ["*"],
        "allow_headers": ["*"],
    }
    if config.cors_origin_regex:
        logger.info("CORS origin regex: %s", config.cors_origin_regex)
        cors_kw["allow_origin_regex"] = config.cors_origin_regex
    app.add_middleware(CORSMiddleware, **cors_kw)

    # -----------------------------------------------------------------------
    # Health & root
    # -----------------------------------------------------------------------
    @app.get("/health", response_model=HealthResponse)
    @app.get("/api/health", response_model=HealthResponse)
    async def health():
        """Health check endpoint."""
        return HealthResponse(status="ok", data_dir=str(config.data_dir))

    @app.get("/api/")
    async def root():
        return {"message": "Cadence API", "version": __version__}

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    from backend.routes import jobs, usage, videos

    app.include_router(jobs.router, prefix="/api", tags=["generation-jobs"])
    app.include_router(videos.router, prefix="/api", tags=["videos"])
    app.include_router(usage.router, prefix="/api", tags=["usage"])
    return app


app = create_app()
