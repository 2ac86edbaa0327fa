from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Union

from sqlalchemy import func, insert
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from blog_analytics.core.errors import StoreError
from blog_analytics.core.kinds import classify
from blog_analytics.db import EventStore
from blog_analytics.models.event import AnalyticsEvent

logger = logging.getLogger(__name__)

MAX_READ_LIMIT = 500


class BatchWriteResult(NamedTuple):
    saved_ids: List[str]
    # input index -> short reason, for rows the store refused
    failures: Dict[int, str]


class KindFilter(NamedTuple):
    """
    A report filter on event kind. Filters that name no known kind keep the
    requested spelling in ``raw`` so they select only the custom events
    stored under that raw kind, not every custom event.
    """

    kind: str
    raw: Optional[str] = None

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["KindFilter"]:
        if value is None or not value.strip():
            return None
        classified = classify(value)
        if classified.recognized:
            return cls(classified.kind.value)
        return cls(classified.kind.value, value.strip().lower())

    def clauses(self) -> List[Any]:
        out = [AnalyticsEvent.kind == self.kind]
        if self.raw is not None:
            out.append(func.lower(func.trim(AnalyticsEvent.raw_kind)) == self.raw)
        return out


KindLike = Union[str, KindFilter]


def kind_clauses(kind: Optional[KindLike]) -> List[Any]:
    if kind is None:
        return []
    if isinstance(kind, KindFilter):
        return kind.clauses()
    return [AnalyticsEvent.kind == kind]


def new_event_id() -> str:
    return uuid.uuid4().hex


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Surface any driver / ORM failure as StoreError."""
    try:
        yield
    except StoreError:
        raise
    except SQLAlchemyError as e:
        logger.exception("Event store %s failed", action)
        raise StoreError(f"Event store {action} failed") from e


def _short_reason(e: SQLAlchemyError) -> str:
    reason = str(getattr(e, "orig", None) or e)
    return reason.splitlines()[0][:200] if reason else e.__class__.__name__


class EventRepository:
    """
    Append-only access to analytics events. There is deliberately no update
    method: events are inserted once and only ever removed by delete/cleanup.
    """

    def __init__(self, store: EventStore):
        self.store = store

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------
    def append(self, row: Dict[str, Any]) -> str:
        row = {**row, "id": row.get("id") or new_event_id()}
        with store_errors("write"), self.store.session() as db:
            db.add(AnalyticsEvent(**row))
            db.commit()
        return row["id"]

    def append_many(self, rows: List[Dict[str, Any]]) -> BatchWriteResult:
        """
        Insert rows as one unordered multi-row statement. If the statement is
        refused, every row is retried on its own so a single bad row costs
        only itself.
        """
        rows = [{**r, "id": r.get("id") or new_event_id()} for r in rows]
        if not rows:
            return BatchWriteResult([], {})

        try:
            with self.store.session() as db:
                db.execute(insert(AnalyticsEvent), rows)
                db.commit()
            return BatchWriteResult([r["id"] for r in rows], {})
        except (OperationalError, InterfaceError, PoolTimeoutError) as e:
            # the store itself is unavailable, retrying row by row cannot help
            logger.exception("Multi-row insert of %d events failed", len(rows))
            raise StoreError("Event store write failed") from e
        except SQLAlchemyError as e:
            logger.warning("Multi-row insert of %d events refused (%s), retrying per row", len(rows), _short_reason(e))

        saved: List[str] = []
        failures: Dict[int, str] = {}
        for i, row in enumerate(rows):
            try:
                with self.store.session() as db:
                    db.add(AnalyticsEvent(**row))
                    db.commit()
            except SQLAlchemyError as e:
                failures[i] = _short_reason(e)
            else:
                saved.append(row["id"])

        if failures:
            logger.warning("%d of %d events could not be stored", len(failures), len(rows))
        return BatchWriteResult(saved, failures)

    def delete(self, event_id: str) -> int:
        with store_errors("delete"), self.store.session() as db:
            deleted = db.query(AnalyticsEvent).filter(AnalyticsEvent.id == event_id).delete(synchronize_session=False)
            db.commit()
        return int(deleted or 0)

    def delete_older_than(self, cutoff: datetime) -> int:
        with store_errors("cleanup"), self.store.session() as db:
            deleted = db.query(AnalyticsEvent).filter(AnalyticsEvent.ts < cutoff).delete(synchronize_session=False)
            db.commit()
        return int(deleted or 0)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def find(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        kind: Optional[KindLike] = None,
        page: Optional[str] = None,
        session_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[AnalyticsEvent]:
        limit = max(1, min(MAX_READ_LIMIT, int(limit)))

        with store_errors("read"), self.store.session() as db:
            q = db.query(AnalyticsEvent)
            if since is not None:
                q = q.filter(AnalyticsEvent.ts >= since)
            if until is not None:
                q = q.filter(AnalyticsEvent.ts <= until)
            q = q.filter(*kind_clauses(kind))
            if page is not None:
                q = q.filter(AnalyticsEvent.page == page)
            if session_id is not None:
                q = q.filter(AnalyticsEvent.session_id == session_id)
            return q.order_by(AnalyticsEvent.ts.desc()).limit(limit).all()

    def by_time_range(self, since: datetime, until: Optional[datetime] = None, limit: int = 100) -> List[AnalyticsEvent]:
        return self.find(since=since, until=until, limit=limit)

    def by_session(self, session_id: str, limit: int = 100) -> List[AnalyticsEvent]:
        return self.find(session_id=session_id, limit=limit)

    def by_kind(self, kind: KindLike, since: Optional[datetime] = None, limit: int = 100) -> List[AnalyticsEvent]:
        return self.find(kind=kind, since=since, limit=limit)

    def by_page(self, page: str, since: Optional[datetime] = None, limit: int = 100) -> List[AnalyticsEvent]:
        return self.find(page=page, since=since, limit=limit)

    def get(self, event_id: str) -> Optional[AnalyticsEvent]:
        with store_errors("read"), self.store.session() as db:
            return db.get(AnalyticsEvent, event_id)

    def count(self, since: Optional[datetime] = None, kind: Optional[KindLike] = None) -> int:
        with store_errors("read"), self.store.session() as db:
            q = db.query(AnalyticsEvent)
            if since is not None:
                q = q.filter(AnalyticsEvent.ts >= since)
            q = q.filter(*kind_clauses(kind))
            return q.count()

    def last_event_time(self) -> Optional[datetime]:
        with store_errors("read"), self.store.session() as db:
            row = db.query(AnalyticsEvent.ts).order_by(AnalyticsEvent.ts.desc()).first()
        return row[0] if row else None
