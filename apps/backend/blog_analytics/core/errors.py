from __future__ import annotations

from typing import Any, Dict, Optional


class AnalyticsError(Exception):
    """Base for every error the pipeline renders as a structured response."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AnalyticsError):
    status_code = 400


class AuthError(AnalyticsError):
    status_code = 401


class RateLimitedError(AnalyticsError):
    status_code = 429


class StoreError(AnalyticsError):
    status_code = 500


class InternalError(AnalyticsError):
    status_code = 500
