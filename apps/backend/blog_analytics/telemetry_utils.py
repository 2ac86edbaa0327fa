from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request


@dataclass(frozen=True)
class RequestContext:
    """What the pipeline is allowed to know about the HTTP request itself."""

    ip: str = "unknown"
    user_agent: Optional[str] = None
    headers: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def referer(self) -> Optional[str]:
        return self.headers.get("referer")

    def as_metadata(self) -> Dict[str, Any]:
        return {
            "ip": self.ip,
            "userAgent": self.user_agent,
            "device": guess_device_from_ua(self.user_agent),
            "headers": dict(self.headers),
        }


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # first hop is the original client
        return forwarded.split(",")[0].strip() or "unknown"
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def context_from_request(request: Request) -> RequestContext:
    return RequestContext(
        ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        headers={
            "referer": request.headers.get("referer"),
            "origin": request.headers.get("origin"),
            "host": request.headers.get("host"),
        },
    )


def guess_device_from_ua(user_agent: str | None) -> str | None:
    if not user_agent:
        return None
    ua = user_agent.lower()
    if "iphone" in ua or "android" in ua or "mobile" in ua:
        return "mobile"
    return "desktop"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything stored is UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value is not None else None


def short_id(value: Optional[str], keep: int = 20) -> str:
    if not value:
        return ""
    return value if len(value) <= keep else value[:keep] + "..."
