from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends

from blog_analytics.api.deps import enforce_rate_limit, get_ingestion, request_context
from blog_analytics.api.errors import guarded
from blog_analytics.services.ingest import IngestionService
from blog_analytics.telemetry_utils import RequestContext, iso

router = APIRouter()

# mount reporting endpoints
from blog_analytics.api.report_routes import router as report_router  # noqa: E402

router.include_router(report_router)


@router.post("/pageview", dependencies=[Depends(enforce_rate_limit)])
def track_pageview(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    context: RequestContext = Depends(request_context),
    ingestion: IngestionService = Depends(get_ingestion),
):
    """Accepts sessionId plus page or url, in either field-naming convention."""
    with guarded("Failed to track pageview"):
        stored = ingestion.record_pageview(payload, context)

    return {
        "success": True,
        "message": "Pageview tracked successfully",
        "eventId": stored.id,
        "kind": stored.kind.value,
        "page": stored.page,
        "timestamp": iso(stored.timestamp),
    }


@router.post("/event", dependencies=[Depends(enforce_rate_limit)])
def track_event(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    context: RequestContext = Depends(request_context),
    ingestion: IngestionService = Depends(get_ingestion),
):
    with guarded("Failed to track event"):
        stored = ingestion.record_event(payload, context)

    return {
        "success": True,
        "message": "Event tracked successfully",
        "eventId": stored.id,
        "eventName": stored.event_name,
        "kind": stored.kind.value,
        "timestamp": iso(stored.timestamp),
    }


@router.post("/postview", dependencies=[Depends(enforce_rate_limit)])
def track_postview(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    context: RequestContext = Depends(request_context),
    ingestion: IngestionService = Depends(get_ingestion),
):
    with guarded("Failed to track post view"):
        stored = ingestion.record_postview(payload, context)

    return {
        "success": True,
        "message": "Post view tracked successfully",
        "eventId": stored.id,
        "postId": stored.post_id,
    }


@router.post("/bulk", dependencies=[Depends(enforce_rate_limit)])
def track_bulk(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    context: RequestContext = Depends(request_context),
    ingestion: IngestionService = Depends(get_ingestion),
):
    """
    Offline-sync endpoint: ``{"events": [...]}``, at most 1000 entries.
    Partial success is reported, not raised.
    """
    with guarded("Failed to process bulk events"):
        result = ingestion.record_bulk((payload or {}).get("events"), context)

    body: Dict[str, Any] = {
        "success": True,
        "message": f"Successfully processed {result.saved_count} events",
        "savedCount": result.saved_count,
        "failedCount": result.failed_count,
    }
    if result.errors:
        body["errors"] = result.errors
    return body
