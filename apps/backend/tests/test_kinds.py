import pytest

from blog_analytics.core.kinds import EventKind, classify
from blog_analytics.services.rules import load_kind_aliases


@pytest.mark.parametrize("kind", list(EventKind))
def test_vocabulary_members_classify_to_themselves(kind):
    result = classify(kind.value)
    assert result.kind is kind
    assert result.raw == kind.value
    assert result.recognized


def test_case_and_whitespace_are_ignored_but_raw_is_kept():
    result = classify("  PageView ")
    assert result.kind is EventKind.PAGEVIEW
    assert result.raw == "  PageView "


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("page_view", EventKind.PAGEVIEW),
        ("post", EventKind.POST_VIEW),
        ("mouse_movements_batch", EventKind.HEATMAP_INTERACTION),
        ("scroll_milestone", EventKind.SCROLL),
        ("javascript_error", EventKind.ERROR),
        ("external-link-click", EventKind.OUTBOUND_CLICK),
        ("newsletter_signup", EventKind.NEWSLETTER_ENGAGEMENT),
        ("performance_metrics", EventKind.PERFORMANCE),
        ("custom_event", EventKind.CUSTOM),
    ],
)
def test_historical_aliases(raw, expected):
    result = classify(raw)
    assert result.kind is expected
    assert result.raw == raw
    assert result.recognized


@pytest.mark.parametrize("raw", ["video_play", "Totally Unknown", "ecommerce_add_to_cart"])
def test_unknown_strings_fall_back_to_custom(raw):
    result = classify(raw)
    assert result.kind is EventKind.CUSTOM
    assert result.raw == raw
    assert not result.recognized


def test_missing_input_is_custom_without_raw():
    result = classify(None)
    assert result.kind is EventKind.CUSTOM
    assert result.raw is None


def test_non_string_input_never_raises():
    assert classify(42).kind is EventKind.CUSTOM
    assert classify(42).raw == "42"
    assert classify("   ").kind is EventKind.CUSTOM


def test_alias_table_targets_are_vocabulary_members():
    vocabulary = {k.value for k in EventKind}
    table = load_kind_aliases()
    assert table
    assert set(table.values()) <= vocabulary
    assert not set(table) & vocabulary
