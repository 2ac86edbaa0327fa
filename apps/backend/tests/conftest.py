from __future__ import annotations

from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient

from blog_analytics.core.config import Settings
from blog_analytics.factory import create_app
from blog_analytics.telemetry_utils import utcnow

API = "/api/analytics"
ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
def settings() -> Settings:
    # "sqlite://" is a private in-memory database per app
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        admin_token=ADMIN_TOKEN,
        environment="development",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def repository(app, client):
    return app.state.repository


@pytest.fixture
def seed(repository):
    """Insert a stored event directly, bypassing normalization."""

    def _seed(**fields: Any) -> str:
        row: Dict[str, Any] = {
            "kind": "pageview",
            "session_id": "s1",
            "page": "/",
            "meta": {},
            "ts": utcnow(),
        }
        row.update(fields)
        return repository.append(row)

    return _seed
