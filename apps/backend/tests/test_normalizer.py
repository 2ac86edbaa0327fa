from datetime import datetime, timezone

from blog_analytics.core.normalizer import normalize, parse_timestamp
from blog_analytics.schemas.events import UTM


def _without_provenance(record):
    data = record.model_dump()
    data["metadata"].pop("normalization", None)
    return data


def test_empty_payload_gives_empty_record():
    record = normalize({})
    assert record.session_id is None
    assert record.raw_kind is None
    assert record.utm == UTM()
    assert record.metadata == {}

    assert normalize(None).metadata == {}


def test_camel_case_wins_over_underscore():
    record = normalize({"utm_source": "underscore", "utmSource": "camel", "session_id": "a", "sessionId": "b"})
    assert record.utm.source == "camel"
    assert record.session_id == "b"


def test_kind_precedence():
    assert normalize({"event_type": "c", "type": "b", "eventType": "a"}).raw_kind == "a"
    assert normalize({"event_type": "c", "type": "b"}).raw_kind == "b"
    assert normalize({"event_type": "c"}).raw_kind == "c"


def test_naming_conventions_normalize_identically():
    underscore = normalize(
        {
            "session_id": "s1",
            "event_type": "click",
            "event_name": "cta",
            "utm_source": "x",
            "utm_medium": "email",
            "utm_campaign": "launch",
            "post_id": "p1",
            "scroll_depth": 50,
        }
    )
    camel = normalize(
        {
            "sessionId": "s1",
            "eventType": "click",
            "eventName": "cta",
            "utmSource": "x",
            "utmMedium": "email",
            "utmCampaign": "launch",
            "postId": "p1",
            "scrollDepth": 50,
        }
    )
    assert _without_provenance(underscore) == _without_provenance(camel)
    assert underscore.metadata["normalization"] != camel.metadata["normalization"]


def test_provenance_lists_received_spellings():
    record = normalize({"utm_source": "a", "utmSource": "b", "page": "/x"})
    received = record.metadata["normalization"]["receivedFields"]
    assert received["utm_source"] == ["utmSource", "utm_source"]
    assert received["page"] == ["page"]


def test_unknown_keys_are_preserved():
    record = normalize({"sessionId": "s1", "abVariant": "B", "nested": {"a": [1, 2]}})
    assert record.metadata["extra"] == {"abVariant": "B", "nested": {"a": [1, 2]}}


def test_blank_value_falls_through_to_next_spelling():
    record = normalize({"sessionId": "   ", "session_id": "s2"})
    assert record.session_id == "s2"


def test_strings_are_trimmed_but_raw_kind_is_verbatim():
    record = normalize({"page": "  /blog/a  ", "type": "  Odd Kind "})
    assert record.page == "/blog/a"
    assert record.raw_kind == "  Odd Kind "


def test_client_metadata_and_event_data():
    record = normalize({"metadata": {"title": "Hello"}, "eventData": {"button": "subscribe"}})
    assert record.metadata["client"] == {"title": "Hello"}
    assert record.metadata["eventData"] == {"button": "subscribe"}


def test_client_metadata_keys_do_not_collide_with_server_keys():
    record = normalize(
        {
            "sessionId": "s1",
            "metadata": {"extra": "client-signal", "normalization": "mine", "ip": "c"},
            "abVariant": "B",
        }
    )
    assert record.metadata["client"] == {"extra": "client-signal", "normalization": "mine", "ip": "c"}
    assert record.metadata["extra"] == {"abVariant": "B"}
    assert "receivedFields" in record.metadata["normalization"]


def test_non_finite_numbers_are_kept_as_strings():
    record = normalize(
        {
            "scrollDepth": float("nan"),
            "viewportSize": {"width": float("inf"), "height": 10},
            "metadata": {"ratio": float("-inf"), "samples": [1.5, float("nan")]},
        }
    )
    assert record.scroll_depth is None
    assert record.viewport_size is None
    assert record.metadata["extra"] == {"scrollDepth": "nan", "viewportSize": {"width": "inf", "height": 10}}
    assert record.metadata["client"] == {"ratio": "-inf", "samples": [1.5, "nan"]}
    assert normalize({"scrollDepth": "Infinity"}).metadata["extra"] == {"scrollDepth": "Infinity"}


def test_uncoercible_values_move_to_extra():
    record = normalize({"scrollDepth": "deep", "timestamp": "yesterday-ish", "viewportSize": "big"})
    assert record.scroll_depth is None
    assert record.timestamp is None
    assert record.viewport_size is None
    assert record.metadata["extra"] == {
        "scrollDepth": "deep",
        "timestamp": "yesterday-ish",
        "viewportSize": "big",
    }


def test_structured_fields():
    record = normalize(
        {"scrollDepth": "75", "viewportSize": {"width": 1280, "height": 720}, "coordinates": {"x": 10, "y": 20.5}}
    )
    assert record.scroll_depth == 75.0
    assert record.viewport_size.width == 1280
    assert record.coordinates.y == 20.5


def test_parse_timestamp_formats():
    expected = datetime(2026, 1, 29, 12, 34, 56, tzinfo=timezone.utc)
    assert parse_timestamp("2026-01-29T12:34:56.000Z") == expected
    assert parse_timestamp("2026-01-29T14:34:56+02:00") == expected
    assert parse_timestamp("2026-01-29T12:34:56") == expected
    assert parse_timestamp(expected.timestamp() * 1000) == expected
    assert parse_timestamp(int(expected.timestamp())) == expected
    assert parse_timestamp(str(int(expected.timestamp() * 1000))) == expected
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(True) is None
