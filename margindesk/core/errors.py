"""Error types and JSON error rendering."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class IntegrationError(Exception):
    """External API call failed; carries upstream response text."""

    def __init__(self, message: str, upstream: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.upstream = upstream


def error_body(error: str, details: object | None = None) -> dict[str, object]:
    return {"error": error, "details": details}


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        body = {"details": None, **exc.detail}
        body.setdefault("error", "Request failed")
    else:
        body = error_body(str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(body), headers=exc.headers)


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder(error_body("Validation failed", exc.errors())),
    )


async def _integration_exception_handler(request: Request, exc: IntegrationError) -> JSONResponse:
    logger.warning("Integration failure on %s: %s", request.url.path, exc.message)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(exc.message, exc.upstream),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(IntegrationError, _integration_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
