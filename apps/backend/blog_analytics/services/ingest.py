from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from blog_analytics.core.errors import ValidationError
from blog_analytics.core.kinds import ClassifiedKind, EventKind, classify
from blog_analytics.core.normalizer import json_safe, normalize
from blog_analytics.core.validation import REQUIRE_EVENT_NAME, REQUIRE_LOCATION, page_from_url, validate
from blog_analytics.schemas.events import BulkResult, CanonicalEvent
from blog_analytics.services.store import EventRepository
from blog_analytics.telemetry_utils import RequestContext, short_id, utcnow

logger = logging.getLogger(__name__)

SOURCE_PAGEVIEW = "analytics-pageview"
SOURCE_EVENT = "analytics-event"
SOURCE_POSTVIEW = "analytics-postview"
SOURCE_BULK = "bulk-upload"

# post fields the blog frontend sends alongside a post view
_POST_DETAIL_KEYS = ("title", "slug", "category", "readTime", "referrer")


@dataclass(frozen=True)
class StoredEvent:
    id: str
    kind: EventKind
    raw_kind: Optional[str]
    event_name: Optional[str]
    page: Optional[str]
    timestamp: datetime
    post_id: Optional[str] = None


def to_row(
    record: CanonicalEvent,
    classified: ClassifiedKind,
    context: RequestContext,
    source: str,
    extra_metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Column values for one validated record."""
    # client data lives under "client", "extra" and "eventData"; the rest is server-owned
    metadata: Dict[str, Any] = dict(record.metadata)
    metadata.update(context.as_metadata())
    metadata["source"] = source
    if extra_metadata:
        metadata.update(extra_metadata)

    return {
        "kind": classified.kind.value,
        "raw_kind": classified.raw,
        "session_id": record.session_id,
        "event_name": record.event_name,
        "page": record.page,
        "url": record.url,
        "title": record.title,
        "referrer": record.referrer,
        "screen_resolution": record.screen_resolution,
        "language": record.language,
        "user_agent": record.user_agent or context.user_agent,
        "element": record.element,
        "element_id": record.element_id,
        "post_id": record.post_id,
        "utm_source": record.utm.source,
        "utm_medium": record.utm.medium,
        "utm_campaign": record.utm.campaign,
        "utm_content": record.utm.content,
        "utm_term": record.utm.term,
        "scroll_depth": record.scroll_depth,
        "viewport_size": record.viewport_size.model_dump() if record.viewport_size else None,
        "coordinates": record.coordinates.model_dump() if record.coordinates else None,
        "meta": metadata,
        "ts": record.timestamp or utcnow(),
    }


class IngestionService:
    def __init__(self, repository: EventRepository, max_bulk_events: int = 1000):
        self.repository = repository
        self.max_bulk_events = max_bulk_events

    def prepare(
        self,
        payload: Optional[Mapping[str, Any]],
        context: RequestContext,
        source: str,
        default_kind: Optional[EventKind] = None,
        default_event_name: Optional[str] = None,
        require: Optional[str] = None,
        extra_metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        record = normalize(payload)

        if record.raw_kind is None and default_kind is not None:
            classified = ClassifiedKind(default_kind, None)
        else:
            classified = classify(record.raw_kind)
            if not classified.recognized and classified.raw is not None:
                logger.debug("Unrecognized event kind %r stored as %s", classified.raw, classified.kind.value)

        if default_event_name and not record.event_name:
            record = record.model_copy(update={"event_name": default_event_name})

        record = validate(record, require=require)
        return to_row(record, classified, context, source, extra_metadata)

    def _store_one(self, row: Dict[str, Any]) -> StoredEvent:
        event_id = self.repository.append(row)
        logger.info(
            "Tracked %s event %s (session=%s, page=%s)",
            row["kind"],
            event_id,
            short_id(row["session_id"]),
            row["page"],
        )
        return StoredEvent(
            id=event_id,
            kind=EventKind(row["kind"]),
            raw_kind=row["raw_kind"],
            event_name=row["event_name"],
            page=row["page"],
            timestamp=row["ts"],
            post_id=row["post_id"],
        )

    def record_pageview(self, payload: Optional[Mapping[str, Any]], context: RequestContext) -> StoredEvent:
        try:
            row = self.prepare(
                payload,
                context,
                SOURCE_PAGEVIEW,
                default_kind=EventKind.PAGEVIEW,
                default_event_name="page_view",
                require=REQUIRE_LOCATION,
            )
        except ValidationError as e:
            logger.warning("Pageview rejected: %s", e.message)
            raise
        return self._store_one(row)

    def record_event(self, payload: Optional[Mapping[str, Any]], context: RequestContext) -> StoredEvent:
        try:
            row = self.prepare(payload, context, SOURCE_EVENT, require=REQUIRE_EVENT_NAME)
        except ValidationError as e:
            logger.warning("Event rejected: %s", e.message)
            raise
        return self._store_one(row)

    def record_postview(self, payload: Optional[Mapping[str, Any]], context: RequestContext) -> StoredEvent:
        payload = dict(payload or {}) if isinstance(payload, Mapping) else {}
        record = normalize(payload)
        if not record.post_id:
            logger.warning("Post view rejected: missing postId")
            raise ValidationError("missing postId", {"field": "postId"})

        updates: Dict[str, Any] = {"event_name": "post_view"}
        if not record.session_id:
            now_ms = int(utcnow().timestamp() * 1000)
            updates["session_id"] = f"post_{record.post_id}_{now_ms}"
        url = record.url or context.referer
        if url and not record.url:
            updates["url"] = url
        if url and not record.page:
            updates["page"] = page_from_url(url)

        record = validate(record.model_copy(update=updates))

        details = {k: json_safe(payload[k]) for k in _POST_DETAIL_KEYS if k in payload}
        details["postId"] = record.post_id
        row = to_row(
            record,
            ClassifiedKind(EventKind.POST_VIEW, record.raw_kind),
            context,
            SOURCE_POSTVIEW,
            {"postId": record.post_id, "postDetails": details},
        )
        return self._store_one(row)

    def record_bulk(self, events: Any, context: RequestContext) -> BulkResult:
        """
        Validate and store many events at once. Invalid entries are reported
        per index and skipped; the rest are written without cross-record
        atomicity.
        """
        if not isinstance(events, list):
            raise ValidationError("Missing or invalid events array")
        if len(events) > self.max_bulk_events:
            raise ValidationError(
                f"Too many events in bulk request. Maximum {self.max_bulk_events} events allowed.",
                {"received": len(events)},
            )

        logger.info("Processing bulk events: %d events", len(events))

        rows: List[Dict[str, Any]] = []
        positions: List[int] = []
        errors: List[str] = []

        for index, entry in enumerate(events):
            if not isinstance(entry, Mapping):
                errors.append(f"Event {index}: not a JSON object")
                continue
            try:
                row = self.prepare(entry, context, SOURCE_BULK, extra_metadata={"bulkIndex": index})
            except ValidationError as e:
                errors.append(f"Event {index}: {e.message}")
                continue
            rows.append(row)
            positions.append(index)

        if errors and not rows:
            logger.warning("Bulk request rejected: all %d events failed validation", len(events))
            raise ValidationError("All events failed validation", {"errors": errors})

        result = self.repository.append_many(rows)
        for i, reason in sorted(result.failures.items()):
            errors.append(f"Event {positions[i]}: store rejected event ({reason})")

        saved = len(result.saved_ids)
        return BulkResult(saved_count=saved, failed_count=len(events) - saved, errors=errors)
