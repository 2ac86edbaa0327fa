from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from blog_analytics.schemas.events import UTM, CanonicalEvent, Coordinates, ViewportSize
from blog_analytics.services.rules import load_field_aliases

# epoch values at or above this are milliseconds (Date.now() on the client)
_EPOCH_MS_THRESHOLD = 100_000_000_000


class _Invalid:
    pass


INVALID = _Invalid()


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _text(value: Any):
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    return INVALID


def _raw_text(value: Any):
    # kind strings are kept byte-for-byte, the classifier does its own folding
    if isinstance(value, str):
        return value
    return _text(value)


def _number(value: Any):
    if isinstance(value, bool):
        return INVALID
    if not isinstance(value, (int, float, str)):
        return INVALID
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return INVALID
    return number if math.isfinite(number) else INVALID


def json_safe(value: Any) -> Any:
    """Non-finite floats become strings; JSON columns refuse NaN and Infinity."""
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, Mapping):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value


def _pair(model, first: str, second: str) -> Callable[[Any], Any]:
    def convert(value: Any):
        if not isinstance(value, Mapping):
            return INVALID
        a = _number(value.get(first)) if value.get(first) is not None else None
        b = _number(value.get(second)) if value.get(second) is not None else None
        if a is INVALID or b is INVALID:
            return INVALID
        return model(**{first: a, second: b})

    return convert


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 strings (``Z`` allowed) or epoch seconds / milliseconds, as UTC."""
    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if abs(value) >= _EPOCH_MS_THRESHOLD else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            return parse_timestamp(float(s))
        except ValueError:
            pass
        try:
            # fromisoformat only understands "Z" on 3.11+
            dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    return None


def _timestamp(value: Any):
    parsed = parse_timestamp(value)
    return INVALID if parsed is None else parsed


def _mapping(value: Any):
    if isinstance(value, Mapping):
        return dict(value)
    return INVALID


def _passthrough(value: Any):
    return value


_CONVERTERS: Dict[str, Callable[[Any], Any]] = {
    "raw_kind": _raw_text,
    "timestamp": _timestamp,
    "scroll_depth": _number,
    "viewport_size": _pair(ViewportSize, "width", "height"),
    "coordinates": _pair(Coordinates, "x", "y"),
    "metadata": _mapping,
    "event_data": _passthrough,
}

_UTM_FIELDS = {
    "utm_source": "source",
    "utm_medium": "medium",
    "utm_campaign": "campaign",
    "utm_content": "content",
    "utm_term": "term",
}


def normalize(payload: Optional[Mapping[str, Any]]) -> CanonicalEvent:
    """
    Resolve every accepted spelling of every logical field into one record.

    For each logical field the first spelling (in alias-table order) carrying
    a non-blank value wins. Keys outside the alias table, and values that
    cannot be coerced to their field's type, are kept under
    ``metadata["extra"]``; the client's ``metadata`` object is kept whole
    under ``metadata["client"]``. ``metadata["normalization"]`` records which
    spellings were actually received. Non-finite floats anywhere in those
    bags are stored as strings.
    """
    if not isinstance(payload, Mapping):
        payload = {}

    received: Dict[str, List[str]] = {}
    consumed = set()
    fields: Dict[str, Any] = {}
    extra: Dict[str, Any] = {}

    for alias in load_field_aliases():
        present = [s for s in alias.spellings if s in payload]
        if not present:
            continue
        consumed.update(present)
        received[alias.name] = present

        for spelling in present:
            value = payload[spelling]
            if _is_blank(value):
                continue
            converted = _CONVERTERS.get(alias.name, _text)(value)
            if converted is INVALID:
                extra[spelling] = value
                continue
            if converted is not None:
                fields[alias.name] = converted
                break

    for key, value in payload.items():
        if key not in consumed:
            extra[key] = value

    # client metadata stays nested; server keys live beside it
    metadata: Dict[str, Any] = {}
    client = fields.pop("metadata", None)
    if client:
        metadata["client"] = json_safe(client)
    if "event_data" in fields:
        metadata["eventData"] = json_safe(fields.pop("event_data"))
    if extra:
        metadata["extra"] = json_safe(extra)
    if received:
        metadata["normalization"] = {"receivedFields": received}

    utm = UTM(**{short: fields.pop(name) for name, short in _UTM_FIELDS.items() if name in fields})

    return CanonicalEvent(utm=utm, metadata=metadata, **fields)
