from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import Date, case, cast, func, literal_column, or_
from sqlalchemy.orm import Session

from blog_analytics.core.errors import ValidationError
from blog_analytics.core.kinds import EventKind
from blog_analytics.db import EventStore
from blog_analytics.models.event import AnalyticsEvent
from blog_analytics.services.store import KindFilter, KindLike, kind_clauses, store_errors
from blog_analytics.telemetry_utils import iso, utcnow

logger = logging.getLogger(__name__)

MIN_DAYS = 1
MAX_DAYS = 365
DEFAULT_DAYS = 30

TOP_PAGES_LIMIT = 10
DASHBOARD_CAMPAIGNS_LIMIT = 20
UTM_REPORT_LIMIT = 100

_UTM_COLUMNS = (
    AnalyticsEvent.utm_source,
    AnalyticsEvent.utm_medium,
    AnalyticsEvent.utm_campaign,
    AnalyticsEvent.utm_content,
    AnalyticsEvent.utm_term,
)


def parse_days(
    raw: Any,
    default: int = DEFAULT_DAYS,
    minimum: int = MIN_DAYS,
    maximum: Optional[int] = MAX_DAYS,
) -> int:
    """Validate a ``days`` query parameter before any query runs."""
    if maximum is None:
        message = f"Invalid days parameter. Must be an integer of at least {minimum}."
    else:
        message = f"Invalid days parameter. Must be between {minimum} and {maximum}."

    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    try:
        days = int(str(raw).strip())
    except ValueError:
        raise ValidationError(message, {"days": raw})

    if days < minimum or (maximum is not None and days > maximum):
        raise ValidationError(message, {"days": raw})
    return days


@dataclass(frozen=True)
class Window:
    days: int
    start: datetime
    end: datetime

    @classmethod
    def last(cls, days: int, now: Optional[datetime] = None) -> "Window":
        end = now or utcnow()
        return cls(days=days, start=end - timedelta(days=days), end=end)

    def as_dict(self) -> Dict[str, Any]:
        return {"start": iso(self.start), "end": iso(self.end)}


def _day_string(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value)


class AggregationService:
    """
    Read-only dashboard queries. Every call hits the store fresh; writes that
    land while a report is being assembled may or may not be counted.
    """

    def __init__(self, store: EventStore):
        self.store = store

    @contextmanager
    def _read(self) -> Iterator[Session]:
        with store_errors("aggregation"), self.store.session() as db:
            yield db

    def _day_expr(self):
        # calendar day in UTC, without bound parameters so GROUP BY matches SELECT
        dialect = self.store.dialect
        if dialect == "postgresql":
            return cast(func.timezone(literal_column("'UTC'"), AnalyticsEvent.ts), Date)
        return func.date(AnalyticsEvent.ts)

    @staticmethod
    def _filters(window: Window, kind: Optional[KindLike] = None) -> List[Any]:
        return [AnalyticsEvent.ts >= window.start, AnalyticsEvent.ts <= window.end, *kind_clauses(kind)]

    # ------------------------------------------------------------------
    # primitive queries
    # ------------------------------------------------------------------
    def total_events(self, window: Window, kind: Optional[KindLike] = None) -> int:
        with self._read() as db:
            return db.query(func.count(AnalyticsEvent.id)).filter(*self._filters(window, kind)).scalar() or 0

    def unique_sessions(self, window: Window, kind: Optional[KindLike] = None) -> int:
        with self._read() as db:
            return (
                db.query(func.count(func.distinct(AnalyticsEvent.session_id)))
                .filter(*self._filters(window, kind))
                .scalar()
                or 0
            )

    def recent_count(self, hours: int = 24) -> int:
        since = utcnow() - timedelta(hours=hours)
        with self._read() as db:
            return db.query(func.count(AnalyticsEvent.id)).filter(AnalyticsEvent.ts >= since).scalar() or 0

    def kind_breakdown(self, window: Window, kind: Optional[KindLike] = None) -> List[Dict[str, Any]]:
        count = func.count(AnalyticsEvent.id)
        with self._read() as db:
            rows = (
                db.query(
                    AnalyticsEvent.kind,
                    count.label("count"),
                    func.count(func.distinct(AnalyticsEvent.session_id)).label("sessions"),
                )
                .filter(*self._filters(window, kind))
                .group_by(AnalyticsEvent.kind)
                .order_by(count.desc(), AnalyticsEvent.kind)
                .all()
            )
        return [{"kind": r.kind, "count": int(r.count), "uniqueSessions": int(r.sessions)} for r in rows]

    def daily_trend(self, window: Window) -> List[Dict[str, Any]]:
        day = self._day_expr()
        with self._read() as db:
            rows = (
                db.query(
                    day.label("day"),
                    func.count(AnalyticsEvent.id).label("count"),
                    func.count(func.distinct(AnalyticsEvent.session_id)).label("sessions"),
                )
                .filter(*self._filters(window))
                .group_by(day)
                .order_by(day)
                .all()
            )
        return [{"date": _day_string(r.day), "count": int(r.count), "uniqueSessions": int(r.sessions)} for r in rows]

    def _pages(self, window: Window, kind: Optional[str], limit: int) -> List[Dict[str, Any]]:
        views = func.count(AnalyticsEvent.id)
        with self._read() as db:
            rows = (
                db.query(
                    AnalyticsEvent.page,
                    views.label("views"),
                    func.count(func.distinct(AnalyticsEvent.session_id)).label("sessions"),
                    func.max(AnalyticsEvent.ts).label("last_viewed"),
                )
                .filter(*self._filters(window, kind))
                .filter(AnalyticsEvent.page.isnot(None))
                .group_by(AnalyticsEvent.page)
                .order_by(views.desc(), AnalyticsEvent.page)
                .limit(limit)
                .all()
            )
        return [
            {
                "page": r.page,
                "views": int(r.views),
                "uniqueVisitors": int(r.sessions),
                "lastViewed": iso(r.last_viewed),
            }
            for r in rows
        ]

    def top_pages(self, window: Window, limit: int = TOP_PAGES_LIMIT) -> List[Dict[str, Any]]:
        return self._pages(window, EventKind.PAGEVIEW.value, limit)

    def popular_pages(self, window: Window, limit: int = 20) -> List[Dict[str, Any]]:
        return self._pages(window, None, limit)

    def campaigns(
        self,
        window: Window,
        source: Optional[str] = None,
        medium: Optional[str] = None,
        campaign: Optional[str] = None,
        limit: int = DASHBOARD_CAMPAIGNS_LIMIT,
    ) -> List[Dict[str, Any]]:
        total = func.count(AnalyticsEvent.id)
        page_views = func.sum(case((AnalyticsEvent.kind == EventKind.PAGEVIEW.value, 1), else_=0))

        with self._read() as db:
            q = (
                db.query(
                    *_UTM_COLUMNS,
                    total.label("total"),
                    func.count(func.distinct(AnalyticsEvent.session_id)).label("sessions"),
                    page_views.label("page_views"),
                    func.min(AnalyticsEvent.ts).label("first_seen"),
                    func.max(AnalyticsEvent.ts).label("last_seen"),
                )
                .filter(*self._filters(window))
                .filter(or_(*[c.isnot(None) for c in _UTM_COLUMNS]))
            )
            if source:
                q = q.filter(AnalyticsEvent.utm_source == source)
            if medium:
                q = q.filter(AnalyticsEvent.utm_medium == medium)
            if campaign:
                q = q.filter(AnalyticsEvent.utm_campaign == campaign)

            rows = q.group_by(*_UTM_COLUMNS).order_by(total.desc()).limit(limit).all()

        return [
            {
                "source": r.utm_source,
                "medium": r.utm_medium,
                "campaign": r.utm_campaign,
                "content": r.utm_content,
                "term": r.utm_term,
                "totalEvents": int(r.total),
                "uniqueSessions": int(r.sessions),
                "pageViews": int(r.page_views or 0),
                "firstSeen": iso(r.first_seen),
                "lastSeen": iso(r.last_seen),
            }
            for r in rows
        ]

    # ------------------------------------------------------------------
    # reports
    # ------------------------------------------------------------------
    def stats(self, days: int, kind: Optional[str] = None) -> Dict[str, Any]:
        window = Window.last(days)
        selected = KindFilter.parse(kind)

        breakdown = self.kind_breakdown(window, selected)
        logger.info("Stats computed for last %d days (kind=%s)", days, selected)

        return {
            # derived from the breakdown so the two always agree
            "totalEvents": sum(row["count"] for row in breakdown),
            "pageViews": self.total_events(window, EventKind.PAGEVIEW.value),
            "uniqueSessions": self.unique_sessions(window, selected),
            "eventsByType": breakdown,
            "recentActivity24h": self.recent_count(24),
            "kind": selected.kind if selected else None,
            "rawKind": selected.raw if selected else None,
            "period": f"{days} days",
            "dateRange": window.as_dict(),
        }

    def dashboard(self, days: int) -> Dict[str, Any]:
        window = Window.last(days)

        event_summary = self.kind_breakdown(window)
        top_pages = self.top_pages(window)
        campaigns = self.campaigns(window, limit=DASHBOARD_CAMPAIGNS_LIMIT)

        return {
            "period": f"{days} days",
            "dateRange": window.as_dict(),
            "summary": {
                "totalEvents": sum(row["count"] for row in event_summary),
                "totalUniqueSessions": self.unique_sessions(window),
                "topPagesCount": len(top_pages),
                "campaignsTracked": len(campaigns),
            },
            "eventSummary": event_summary,
            "dailyTrend": self.daily_trend(window),
            "topPages": top_pages,
            "campaignPerformance": campaigns,
        }

    def utm_report(
        self,
        days: int,
        source: Optional[str] = None,
        medium: Optional[str] = None,
        campaign: Optional[str] = None,
    ) -> Dict[str, Any]:
        window = Window.last(days)
        report = self.campaigns(window, source, medium, campaign, limit=UTM_REPORT_LIMIT)
        return {
            "report": report,
            "filters": {"source": source, "medium": medium, "campaign": campaign, "days": days},
            "totalResults": len(report),
        }
