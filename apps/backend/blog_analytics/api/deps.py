from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Request

from blog_analytics.core.config import Settings
from blog_analytics.core.errors import AuthError, RateLimitedError
from blog_analytics.services.aggregation import AggregationService
from blog_analytics.services.health import HealthMonitor
from blog_analytics.services.ingest import IngestionService
from blog_analytics.services.store import EventRepository
from blog_analytics.telemetry_utils import RequestContext, client_ip, context_from_request


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_repository(request: Request) -> EventRepository:
    return request.app.state.repository


def get_ingestion(request: Request) -> IngestionService:
    return request.app.state.ingestion


def get_aggregation(request: Request) -> AggregationService:
    return request.app.state.aggregation


def get_health_monitor(request: Request) -> HealthMonitor:
    return request.app.state.health


def request_context(request: Request) -> RequestContext:
    return context_from_request(request)


def enforce_rate_limit(request: Request) -> None:
    limiter = request.app.state.rate_limiter
    if not limiter.allow(client_ip(request)):
        raise RateLimitedError("Too many requests, slow down")


def require_admin(authorization: Optional[str], settings: Settings) -> None:
    token = (settings.admin_token or "").strip()
    if not token or not authorization:
        raise AuthError("Unauthorized: Admin token required")

    expected = f"Bearer {token}".encode("utf-8")
    if not secrets.compare_digest(authorization.strip().encode("utf-8"), expected):
        raise AuthError("Unauthorized: Admin token required")
