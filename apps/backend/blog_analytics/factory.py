from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from blog_analytics.api.errors import install_error_handlers
from blog_analytics.api.routes import router as analytics_router
from blog_analytics.core.config import Settings, get_settings
from blog_analytics.db import EventStore
from blog_analytics.services.aggregation import AggregationService
from blog_analytics.services.health import HealthMonitor
from blog_analytics.services.ingest import IngestionService
from blog_analytics.services.ratelimit import AllowAllRateLimiter, RateLimiter
from blog_analytics.services.store import EventRepository

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, rate_limiter: Optional[RateLimiter] = None) -> FastAPI:
    settings = settings or get_settings()

    # -----------------------------------------------------------------------------
    # Create app
    # -----------------------------------------------------------------------------
    app = FastAPI(title=settings.app_name, version=settings.version)

    # -----------------------------------------------------------------------------
    # CORS
    # -----------------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------------
    # Services (one store per app, started/stopped with it)
    # -----------------------------------------------------------------------------
    store = EventStore(settings)
    repository = EventRepository(store)

    app.state.settings = settings
    app.state.store = store
    app.state.repository = repository
    app.state.ingestion = IngestionService(repository, max_bulk_events=settings.max_bulk_events)
    app.state.aggregation = AggregationService(store)
    app.state.health = HealthMonitor(repository)
    app.state.rate_limiter = rate_limiter or AllowAllRateLimiter()

    @app.on_event("startup")
    def _startup_store():
        logger.info("Starting %s (%s)", settings.app_name, settings.environment)
        store.start()

    @app.on_event("shutdown")
    def _shutdown_store():
        store.stop()

    # -----------------------------------------------------------------------------
    # Errors + routers
    # -----------------------------------------------------------------------------
    install_error_handlers(app)
    app.include_router(analytics_router, prefix="/api/analytics", tags=["analytics"])

    # -----------------------------------------------------------------------------
    # Basic liveness check
    # -----------------------------------------------------------------------------
    @app.get("/health")
    def health():
        return {"success": True, "status": "ok"}

    # -----------------------------------------------------------------------------
    # Runtime debug (development only)
    # -----------------------------------------------------------------------------
    @app.get("/debug/runtime")
    def debug_runtime():
        if not settings.is_development:
            raise HTTPException(status_code=404, detail="Not found")

        return {
            "success": True,
            "cwd": os.getcwd(),
            "sys_executable": sys.executable,
            "environment": settings.environment,
            "database_url_present": bool(settings.database_url),
            "admin_token_present": bool(settings.admin_token),
            "store_started": store.started,
            "store_dialect": store.dialect,
            "db_init_error": store.init_error,
        }

    return app
