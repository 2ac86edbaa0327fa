import pytest

from blog_analytics.core.errors import ValidationError
from blog_analytics.core.normalizer import normalize
from blog_analytics.core.validation import REQUIRE_EVENT_NAME, REQUIRE_LOCATION, page_from_url, validate


def _validate(payload, **kwargs):
    return validate(normalize(payload), **kwargs)


@pytest.mark.parametrize("payload", [{"page": "/x"}, {"sessionId": "   ", "page": "/x"}])
def test_session_id_is_required(payload):
    with pytest.raises(ValidationError) as exc:
        _validate(payload)
    assert exc.value.message == "missing sessionId"
    assert exc.value.status_code == 400


def test_needs_page_url_or_event_name():
    with pytest.raises(ValidationError) as exc:
        _validate({"sessionId": "s1", "title": "nothing else"})
    assert exc.value.message == "missing page/url/eventName"


def test_session_id_rule_runs_first():
    with pytest.raises(ValidationError) as exc:
        _validate({})
    assert exc.value.message == "missing sessionId"


def test_event_name_alone_is_enough():
    record = _validate({"sessionId": " s1 ", "eventName": "newsletter_signup"})
    assert record.session_id == "s1"
    assert record.page is None


def test_page_derived_from_url():
    record = _validate({"sessionId": "s1", "url": "https://blog.example.com/blog/hello-world?ref=x"})
    assert record.page == "/blog/hello-world"
    assert record.url == "https://blog.example.com/blog/hello-world?ref=x"


def test_explicit_page_is_not_overwritten():
    record = _validate({"sessionId": "s1", "page": "/a", "url": "https://blog.example.com/b"})
    assert record.page == "/a"


@pytest.mark.parametrize("url", ["/blog/relative?x=1", "not a url", "http://[::1"])
def test_unparsable_url_becomes_page(url):
    assert page_from_url(url) == url
    assert _validate({"sessionId": "s1", "url": url}).page == url


def test_root_url_maps_to_slash():
    assert page_from_url("https://blog.example.com") == "/"


def test_location_requirement():
    with pytest.raises(ValidationError) as exc:
        _validate({"sessionId": "s1", "eventName": "click"}, require=REQUIRE_LOCATION)
    assert exc.value.message == "missing page/url"


def test_event_name_requirement():
    with pytest.raises(ValidationError) as exc:
        _validate({"sessionId": "s1", "page": "/x"}, require=REQUIRE_EVENT_NAME)
    assert exc.value.message == "missing eventName"
