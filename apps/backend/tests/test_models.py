import pytest
from sqlalchemy import Text

from blog_analytics.models.event import AnalyticsEvent


@pytest.mark.parametrize(
    "column",
    [
        "raw_kind",
        "session_id",
        "event_name",
        "page",
        "url",
        "title",
        "referrer",
        "screen_resolution",
        "language",
        "user_agent",
        "post_id",
        "utm_source",
        "utm_term",
    ],
)
def test_client_supplied_text_columns_are_unbounded(column):
    # bounded varchars make Postgres refuse long but valid client values
    assert isinstance(AnalyticsEvent.__table__.c[column].type, Text)
