from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse

from blog_analytics.api.deps import (
    get_aggregation,
    get_app_settings,
    get_health_monitor,
    get_repository,
    request_context,
    require_admin,
)
from blog_analytics.api.errors import guarded
from blog_analytics.core.config import Settings
from blog_analytics.models.event import AnalyticsEvent
from blog_analytics.services.aggregation import AggregationService, Window, parse_days
from blog_analytics.services.health import HealthMonitor
from blog_analytics.services.store import MAX_READ_LIMIT, EventRepository, KindFilter
from blog_analytics.telemetry_utils import RequestContext, iso, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

CLEANUP_DEFAULT_DAYS = 365


def _limit(raw: Optional[int], default: int) -> int:
    if raw is None:
        return default
    return max(1, min(MAX_READ_LIMIT, raw))


def _summary(e: AnalyticsEvent) -> Dict[str, Any]:
    return {
        "id": e.id,
        "kind": e.kind,
        "rawKind": e.raw_kind,
        "eventName": e.event_name,
        "page": e.page,
        "url": e.url,
        "sessionId": e.session_id,
        "postId": e.post_id,
        "timestamp": iso(e.ts),
    }


@router.get("/stats")
def stats(
    days: Optional[str] = Query(default=None),
    kind: Optional[str] = Query(default=None),
    type_: Optional[str] = Query(default=None, alias="type"),
    aggregation: AggregationService = Depends(get_aggregation),
):
    days_int = parse_days(days)

    with guarded("Failed to fetch analytics stats"):
        data = aggregation.stats(days_int, kind or type_)

    return {"success": True, "data": data, "timestamp": iso(utcnow())}


@router.get("/dashboard")
def dashboard(
    days: Optional[str] = Query(default=None),
    aggregation: AggregationService = Depends(get_aggregation),
):
    days_int = parse_days(days)

    with guarded("Failed to fetch dashboard analytics"):
        data = aggregation.dashboard(days_int)

    return {"success": True, **data, "timestamp": iso(utcnow())}


@router.get("/utm-report")
def utm_report(
    source: Optional[str] = Query(default=None),
    medium: Optional[str] = Query(default=None),
    campaign: Optional[str] = Query(default=None),
    days: Optional[str] = Query(default=None),
    aggregation: AggregationService = Depends(get_aggregation),
):
    days_int = parse_days(days)

    with guarded("Failed to fetch UTM report"):
        data = aggregation.utm_report(days_int, source, medium, campaign)

    return {"success": True, **data, "timestamp": iso(utcnow())}


@router.get("/popular-pages")
def popular_pages(
    days: Optional[str] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    aggregation: AggregationService = Depends(get_aggregation),
):
    days_int = parse_days(days)

    with guarded("Failed to fetch popular pages"):
        pages = aggregation.popular_pages(Window.last(days_int), _limit(limit, 20))

    return {"success": True, "period": f"{days_int} days", "pages": pages}


@router.get("/events")
def recent_events(
    days: Optional[str] = Query(default=None),
    kind: Optional[str] = Query(default=None),
    page: Optional[str] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    repository: EventRepository = Depends(get_repository),
    aggregation: AggregationService = Depends(get_aggregation),
):
    days_int = parse_days(days)
    window = Window.last(days_int)
    selected = KindFilter.parse(kind)

    with guarded("Failed to fetch events"):
        if page and selected is not None:
            events = repository.find(since=window.start, kind=selected, page=page, limit=_limit(limit, 100))
        elif page:
            events = repository.by_page(page, since=window.start, limit=_limit(limit, 100))
        elif selected is not None:
            events = repository.by_kind(selected, since=window.start, limit=_limit(limit, 100))
        else:
            events = repository.by_time_range(window.start, window.end, limit=_limit(limit, 100))
        total = aggregation.total_events(window, selected)

    return {
        "success": True,
        "period": f"{days_int} days",
        "totalInWindow": total,
        "count": len(events),
        "events": [_summary(e) for e in events],
    }


@router.get("/sessions/{session_id}")
def session_events(
    session_id: str,
    limit: Optional[int] = Query(default=None),
    repository: EventRepository = Depends(get_repository),
):
    with guarded("Failed to fetch session events"):
        events = repository.by_session(session_id, limit=_limit(limit, 100))

    return {
        "success": True,
        "sessionId": session_id,
        "count": len(events),
        "events": [_summary(e) for e in events],
    }


@router.get("/health")
def health(
    context: RequestContext = Depends(request_context),
    monitor: HealthMonitor = Depends(get_health_monitor),
    settings: Settings = Depends(get_app_settings),
):
    with guarded("Analytics API health check failed"):
        report = monitor.health_check(context)

    if not report.store_reachable:
        body: Dict[str, Any] = {
            "success": False,
            "status": "unhealthy",
            "message": "Analytics API health check failed",
            "database": {"connected": False},
            "timestamp": iso(utcnow()),
        }
        if settings.is_development:
            body["error"] = report.error
        return JSONResponse(status_code=500, content=body)

    return {
        "success": True,
        "status": "healthy",
        "message": "Analytics API is running correctly",
        "database": {
            "connected": True,
            "totalEvents": report.total_events,
            "recentEvents24h": report.recent_events_24h,
        },
        "version": settings.version,
        "timestamp": iso(utcnow()),
    }


def _status_body(monitor: HealthMonitor, settings: Settings, ok_status: str) -> JSONResponse:
    report = monitor.status()
    body: Dict[str, Any] = {
        "success": report.connected,
        "status": ok_status if report.connected else "degraded",
        "database": {
            "state": "connected" if report.connected else "disconnected",
            "connected": report.connected,
            "totalEvents": report.total_events,
            "lastEvent": iso(report.last_event),
        },
        "environment": settings.environment,
        "timestamp": iso(utcnow()),
    }
    if not report.connected:
        body["message"] = "Analytics service status check failed"
        if settings.is_development:
            body["error"] = report.error
    return JSONResponse(status_code=200 if report.connected else 500, content=body)


@router.get("/status")
def status(
    monitor: HealthMonitor = Depends(get_health_monitor),
    settings: Settings = Depends(get_app_settings),
):
    with guarded("Analytics service status check failed"):
        return _status_body(monitor, settings, "operational")


@router.get("/db-status")
def db_status(
    monitor: HealthMonitor = Depends(get_health_monitor),
    settings: Settings = Depends(get_app_settings),
):
    with guarded("Database status check failed"):
        return _status_body(monitor, settings, "connected")


@router.get("/test")
def test_endpoint(settings: Settings = Depends(get_app_settings)):
    prefix = "/api/analytics"
    return {
        "success": True,
        "message": "Analytics routes are working correctly!",
        "version": settings.version,
        "timestamp": iso(utcnow()),
        "endpoints": {
            "pageview": f"POST {prefix}/pageview",
            "event": f"POST {prefix}/event",
            "postview": f"POST {prefix}/postview",
            "bulk": f"POST {prefix}/bulk",
            "stats": f"GET {prefix}/stats",
            "dashboard": f"GET {prefix}/dashboard",
            "utmReport": f"GET {prefix}/utm-report",
            "health": f"GET {prefix}/health",
            "status": f"GET {prefix}/status",
            "cleanup": f"DELETE {prefix}/cleanup",
        },
    }


@router.delete("/cleanup")
def cleanup(
    days: Optional[str] = Query(default=None),
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
    repository: EventRepository = Depends(get_repository),
):
    """Retention: delete events older than ``days`` (default 365). Admin only."""
    require_admin(authorization, settings)
    days_int = parse_days(days, default=CLEANUP_DEFAULT_DAYS, maximum=None)
    cutoff = utcnow() - timedelta(days=days_int)

    logger.info("Cleaning up events older than %d days (before %s)", days_int, cutoff.isoformat())
    with guarded("Failed to cleanup old events"):
        deleted = repository.delete_older_than(cutoff)
    logger.info("Cleanup completed: deleted %d events", deleted)

    return {
        "success": True,
        "message": f"Successfully deleted {deleted} events older than {days_int} days",
        "deletedCount": deleted,
        "cutoffDate": iso(cutoff),
    }
