# blog_analytics/models/event.py
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from blog_analytics.db import Base

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class AnalyticsEvent(Base):
  __tablename__ = "analytics_events"

  # opaque, assigned at ingestion (uuid4 hex)
  id: Mapped[str] = mapped_column(String(32), primary_key=True)

  kind: Mapped[str] = mapped_column(String(32), nullable=False)
  raw_kind: Mapped[str | None] = mapped_column(Text, nullable=True)

  session_id: Mapped[str] = mapped_column(Text, nullable=False)
  event_name: Mapped[str | None] = mapped_column(Text, nullable=True)
  page: Mapped[str | None] = mapped_column(Text, nullable=True)
  url: Mapped[str | None] = mapped_column(Text, nullable=True)

  title: Mapped[str | None] = mapped_column(Text, nullable=True)
  referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
  screen_resolution: Mapped[str | None] = mapped_column(Text, nullable=True)
  language: Mapped[str | None] = mapped_column(Text, nullable=True)
  user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
  element: Mapped[str | None] = mapped_column(Text, nullable=True)
  element_id: Mapped[str | None] = mapped_column(Text, nullable=True)

  # advisory reference to a post owned by the CMS, never joined
  post_id: Mapped[str | None] = mapped_column(Text, nullable=True)

  utm_source: Mapped[str | None] = mapped_column(Text, nullable=True)
  utm_medium: Mapped[str | None] = mapped_column(Text, nullable=True)
  utm_campaign: Mapped[str | None] = mapped_column(Text, nullable=True)
  utm_content: Mapped[str | None] = mapped_column(Text, nullable=True)
  utm_term: Mapped[str | None] = mapped_column(Text, nullable=True)

  scroll_depth: Mapped[float | None] = mapped_column(Float, nullable=True)
  viewport_size: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
  coordinates: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)

  # "metadata" is reserved on declarative classes
  meta: Mapped[dict[str, Any]] = mapped_column("metadata", JSONDocument, nullable=False, default=dict)

  ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


Index("idx_analytics_events_kind_ts", AnalyticsEvent.kind, AnalyticsEvent.ts)
Index("idx_analytics_events_session", AnalyticsEvent.session_id)
Index("idx_analytics_events_page_ts", AnalyticsEvent.page, AnalyticsEvent.ts)
Index("idx_analytics_events_utm", AnalyticsEvent.utm_source, AnalyticsEvent.utm_medium)
Index("idx_analytics_events_post_ts", AnalyticsEvent.post_id, AnalyticsEvent.ts)
Index("idx_analytics_events_name_ts", AnalyticsEvent.event_name, AnalyticsEvent.ts)
