# blog_analytics/schemas/events.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, JsonValue


class UTM(BaseModel):
  source: Optional[str] = None
  medium: Optional[str] = None
  campaign: Optional[str] = None
  content: Optional[str] = None
  term: Optional[str] = None


class ViewportSize(BaseModel):
  width: Optional[float] = None
  height: Optional[float] = None


class Coordinates(BaseModel):
  x: Optional[float] = None
  y: Optional[float] = None


class CanonicalEvent(BaseModel):
  """One inbound payload after alias resolution, before classification."""

  raw_kind: Optional[str] = None
  session_id: Optional[str] = None
  event_name: Optional[str] = None
  page: Optional[str] = None
  url: Optional[str] = None
  timestamp: Optional[datetime] = None

  title: Optional[str] = None
  referrer: Optional[str] = None
  screen_resolution: Optional[str] = None
  language: Optional[str] = None
  user_agent: Optional[str] = None
  element: Optional[str] = None
  element_id: Optional[str] = None
  post_id: Optional[str] = None

  scroll_depth: Optional[float] = None
  viewport_size: Optional[ViewportSize] = None
  coordinates: Optional[Coordinates] = None

  utm: UTM = Field(default_factory=UTM)
  metadata: Dict[str, JsonValue] = Field(default_factory=dict)


class BulkResult(BaseModel):
  saved_count: int
  failed_count: int
  errors: List[str] = Field(default_factory=list)
