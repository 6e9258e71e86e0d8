"""Exception handlers rendering every failure as ``{"detail", "request_id"}``."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nexus.domain.common.errors import NexusError
from nexus.obs import logging as obs_logging

logger = logging.getLogger(__name__)


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or obs_logging.current_request_id() or "unknown"


def _error_response(request: Request, status_code: int, detail: Any, **extra: Any) -> JSONResponse:
    body = {"detail": detail, **extra, "request_id": get_request_id(request)}
    return JSONResponse(status_code=status_code, content=body)


async def _nexus_error(request: Request, exc: NexusError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("collaborator failure", extra={"detail": exc.detail, "path": request.url.path})
    return _error_response(request, exc.status_code, exc.detail)


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.detail)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(request, 422, "validation_error", errors=jsonable_encoder(exc.errors()))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NexusError, _nexus_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error)  # type: ignore[arg-type]
