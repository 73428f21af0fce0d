from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from studytools.pipeline.exceptions import PipelineError

logger = logging.getLogger(__name__)


def error_body(message: str, error: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "message": message}
    if error:
        body["error"] = error
    return body


def install_error_handlers(app: FastAPI, expose_diagnostics: bool = True) -> None:
    """Answer every failure with ``{success: false, message, error?}``.

    ``error`` carries the diagnostic detail and is omitted in production.
    """

    @app.exception_handler(PipelineError)
    async def _pipeline_error_handler(_request: Request, exc: PipelineError) -> JSONResponse:
        error = exc.detail if expose_diagnostics else None
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, error))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        error = str(exc.errors()) if expose_diagnostics else None
        return JSONResponse(status_code=400, content=error_body("Invalid request", error))

    @app.exception_handler(Exception)
    async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        error = f"{type(exc).__name__}: {exc}" if expose_diagnostics else None
        return JSONResponse(status_code=500, content=error_body("Internal server error", error))
