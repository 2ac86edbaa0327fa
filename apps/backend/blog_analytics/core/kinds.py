from __future__ import annotations

from enum import Enum
from typing import Any, NamedTuple, Optional

from blog_analytics.services.rules import fold_key, load_kind_aliases


class EventKind(str, Enum):
    PAGEVIEW = "pageview"
    CLICK = "click"
    SCROLL = "scroll"
    CONVERSION = "conversion"
    AFFILIATE_CLICK = "affiliate_click"
    SOCIAL_SHARE = "social_share"
    NEWSLETTER_ENGAGEMENT = "newsletter_engagement"
    OUTBOUND_CLICK = "outbound_click"
    POST_VIEW = "post_view"
    FORM_SUBMIT = "form_submit"
    SESSION_START = "session_start"
    SESSION_END = "session_end"
    HEATMAP_INTERACTION = "heatmap_interaction"
    ERROR = "error"
    PERFORMANCE = "performance"
    HEALTH_CHECK = "health_check"
    CUSTOM = "custom"
    OTHER = "other"


_VOCABULARY = {k.value: k for k in EventKind}


class ClassifiedKind(NamedTuple):
    kind: EventKind
    # exactly what the client sent, None when nothing was sent
    raw: Optional[str]
    # False when the input fell through to the CUSTOM bucket
    recognized: bool = True


def classify(value: Any) -> ClassifiedKind:
    """
    Map any client-supplied kind string onto the closed vocabulary.

    Exact vocabulary members map to themselves, known historical spellings go
    through the alias table, everything else (including missing input) lands
    in CUSTOM. Never raises.
    """
    if value is None:
        return ClassifiedKind(EventKind.CUSTOM, None, False)

    raw = value if isinstance(value, str) else str(value)
    key = fold_key(raw)
    if not key:
        return ClassifiedKind(EventKind.CUSTOM, raw, False)

    kind = _VOCABULARY.get(key)
    if kind is not None:
        return ClassifiedKind(kind, raw)

    alias = load_kind_aliases().get(key)
    if alias is not None:
        return ClassifiedKind(EventKind(alias), raw)

    return ClassifiedKind(EventKind.CUSTOM, raw, False)
