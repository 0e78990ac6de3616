from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import (
    http_exception_handler,
    request_validation_exception_handler,
)
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from keypool.core.errors import AccessDeniedError, ConfigMissingError, api_error
from keypool.core.utils.request_id import get_request_id

logger = logging.getLogger(__name__)


def add_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> Response:
        if request.url.path.startswith("/api/"):
            return JSONResponse(
                status_code=422,
                content=api_error("validation_error", "Invalid request payload"),
            )
        return await request_validation_exception_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        request: Request,
        exc: StarletteHTTPException,
    ) -> Response:
        if request.url.path.startswith("/api/"):
            detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
            return JSONResponse(
                status_code=exc.status_code,
                content=api_error(f"http_{exc.status_code}", detail),
            )
        return await http_exception_handler(request, exc)

    @app.exception_handler(ConfigMissingError)
    async def config_missing_handler(
        request: Request,
        exc: ConfigMissingError,
    ) -> Response:
        logger.error(
            "Balancer is not configured missing=%s path=%s request_id=%s",
            exc.what,
            request.url.path,
            get_request_id(),
        )
        return JSONResponse(
            status_code=500,
            content=api_error("config_missing", str(exc)),
        )

    @app.exception_handler(AccessDeniedError)
    async def access_denied_handler(
        request: Request,
        exc: AccessDeniedError,
    ) -> Response:
        return PlainTextResponse(exc.message, status_code=exc.status_code)
