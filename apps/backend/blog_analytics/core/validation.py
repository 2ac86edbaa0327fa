from __future__ import annotations

from typing import Optional
from urllib.parse import urlsplit

from blog_analytics.core.errors import ValidationError
from blog_analytics.schemas.events import CanonicalEvent

REQUIRE_LOCATION = "location"
REQUIRE_EVENT_NAME = "event_name"


def page_from_url(url: str) -> str:
    """
    Path component of an absolute URL. Anything that does not parse as an
    absolute URL is used as the page verbatim.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url
    return parts.path or "/"


def validate(record: CanonicalEvent, *, require: Optional[str] = None) -> CanonicalEvent:
    """
    Enforce the minimal ingestion contract and return the record ready to store.

    Raises ValidationError for a missing session id, for a record with none of
    page/url/eventName, and for the endpoint-specific requirement named by
    ``require``. When only a URL is present the page is derived from it.
    """
    session_id = (record.session_id or "").strip()
    if not session_id:
        raise ValidationError("missing sessionId", {"field": "sessionId"})

    if not (record.page or record.url or record.event_name):
        raise ValidationError("missing page/url/eventName", {"field": "page/url/eventName"})

    if require == REQUIRE_LOCATION and not (record.page or record.url):
        raise ValidationError("missing page/url", {"field": "page/url"})
    if require == REQUIRE_EVENT_NAME and not record.event_name:
        raise ValidationError("missing eventName", {"field": "eventName"})

    updates = {"session_id": session_id}
    if not record.page and record.url:
        updates["page"] = page_from_url(record.url)

    return record.model_copy(update=updates)
