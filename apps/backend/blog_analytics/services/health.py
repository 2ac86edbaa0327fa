from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from blog_analytics.core.errors import StoreError
from blog_analytics.core.kinds import EventKind
from blog_analytics.services.store import EventRepository
from blog_analytics.telemetry_utils import RequestContext, utcnow

logger = logging.getLogger(__name__)

HEALTH_PAGE = "/api/analytics/health"


@dataclass
class HealthReport:
    store_reachable: bool
    total_events: Optional[int] = None
    recent_events_24h: Optional[int] = None
    error: Optional[str] = None


@dataclass
class StatusReport:
    connected: bool
    total_events: Optional[int] = None
    last_event: Optional[datetime] = None
    error: Optional[str] = None


class HealthMonitor:
    def __init__(self, repository: EventRepository):
        self.repository = repository

    def health_check(self, context: Optional[RequestContext] = None) -> HealthReport:
        """
        Prove the write and delete paths with one synthetic event, then read
        the counters. A concurrent report may briefly count the synthetic
        event; a crash between insert and delete leaves it for retention
        cleanup.
        """
        context = context or RequestContext()
        now = utcnow()
        probe = {
            "kind": EventKind.HEALTH_CHECK.value,
            "raw_kind": EventKind.HEALTH_CHECK.value,
            "session_id": f"health_check_{int(now.timestamp() * 1000)}",
            "event_name": "health_check",
            "page": HEALTH_PAGE,
            "meta": {"source": "health-check", "ip": context.ip},
            "ts": now,
        }

        try:
            probe_id = self.repository.append(probe)
            self.repository.delete(probe_id)

            total = self.repository.count()
            recent = self.repository.count(since=now - timedelta(hours=24))
        except StoreError as e:
            logger.error("Analytics health check failed: %s", e.message)
            return HealthReport(store_reachable=False, error=str(e.__cause__ or e))

        return HealthReport(store_reachable=True, total_events=total, recent_events_24h=recent)

    def status(self) -> StatusReport:
        """Read-only counterpart of health_check, never writes."""
        try:
            total = self.repository.count()
            last = self.repository.last_event_time()
        except StoreError as e:
            logger.error("Analytics status check failed: %s", e.message)
            return StatusReport(connected=False, error=str(e.__cause__ or e))
        return StatusReport(connected=True, total_events=total, last_event=last)
