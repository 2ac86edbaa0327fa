from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from blog_analytics.core.errors import AnalyticsError, InternalError

logger = logging.getLogger(__name__)


@contextmanager
def guarded(message: str) -> Iterator[None]:
    """
    Route boundary: anything that is not already an AnalyticsError becomes an
    InternalError carrying ``message``, so one bad request never escapes as an
    unstructured crash.
    """
    try:
        yield
    except AnalyticsError:
        raise
    except Exception as e:
        logger.exception(message)
        raise InternalError(message) from e


def error_body(exc: AnalyticsError, development: bool) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": exc.message}
    body.update(exc.details)
    if exc.status_code >= 500 and development:
        body["error"] = str(exc.__cause__ or exc)
    return body


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AnalyticsError)
    async def _analytics_error(request: Request, exc: AnalyticsError):
        development = request.app.state.settings.is_development
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(error_body(exc, development)))

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content=jsonable_encoder(
                {"success": False, "message": "Invalid request", "errors": exc.errors()},
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )
