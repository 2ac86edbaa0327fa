# blog_analytics/db.py
import logging
import math
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from blog_analytics.core.config import Settings
from blog_analytics.core.errors import StoreError

logger = logging.getLogger(__name__)

Base = declarative_base()


class EventStore:
  """
  Owns the engine and connection pool. Built by the app factory, started on
  startup and disposed on shutdown; nothing else holds a module-level engine.
  """

  def __init__(self, settings: Settings):
    self.settings = settings
    self.engine: Optional[Engine] = None
    self.init_error: Optional[str] = None
    self._sessions: Optional[sessionmaker] = None

  @property
  def started(self) -> bool:
    return self._sessions is not None

  @property
  def dialect(self) -> str:
    return self.engine.dialect.name if self.engine is not None else ""

  def _engine_kwargs(self, url: str) -> Dict[str, Any]:
    timeout = float(self.settings.store_timeout_seconds)
    parsed = make_url(url)

    if parsed.get_backend_name() == "sqlite":
      if parsed.database in (None, "", ":memory:"):
        # one shared connection, otherwise every checkout sees an empty db
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
      return {"connect_args": {"check_same_thread": False, "timeout": timeout}}

    kwargs: Dict[str, Any] = {
      "pool_pre_ping": True,
      "pool_size": self.settings.pool_size,
      "max_overflow": self.settings.max_overflow,
      "pool_timeout": timeout,
    }
    if parsed.get_backend_name() == "postgresql":
      kwargs["connect_args"] = {
        "connect_timeout": max(1, math.ceil(timeout)),
        "options": f"-c statement_timeout={int(timeout * 1000)}",
      }
    return kwargs

  def start(self) -> None:
    url = (self.settings.database_url or "").strip()
    if not url:
      # Fail fast: better to know immediately in logs
      raise RuntimeError("DATABASE_URL is not set")

    self.engine = create_engine(url, **self._engine_kwargs(url))
    self._sessions = sessionmaker(
      autocommit=False,
      autoflush=False,
      expire_on_commit=False,
      bind=self.engine,
    )

    try:
      Base.metadata.create_all(bind=self.engine)
    except SQLAlchemyError as e:
      # keep serving; /health reports the store as unreachable
      self.init_error = repr(e)
      logger.exception("Could not create analytics tables")
    else:
      self.init_error = None
      logger.info("Event store started (%s)", self.dialect)

  def stop(self) -> None:
    if self.engine is not None:
      self.engine.dispose()
      logger.info("Event store stopped")
    self.engine = None
    self._sessions = None

  @contextmanager
  def session(self) -> Iterator[Session]:
    if self._sessions is None:
      raise StoreError("Event store is not started")

    db = self._sessions()
    try:
      yield db
    finally:
      db.close()
