# SPDX-License-Identifier: AGPL-3.0-or-later
"""FastAPI application over the lifecycle engine."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from bottleops.api.errors import (
    engine_error_envelope,
    normalize_http_exc,
    normalize_validation_err,
    status_for,
)
from bottleops.api.routes import orders_router, pricing_router, production_router
from bottleops.errors import EngineError
from bottleops.version import VERSION

logger = logging.getLogger(__name__)


async def _engine_error(request: Request, exc: EngineError):
    status = status_for(exc)
    if status >= 409:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=status, content=engine_error_envelope(exc))


async def _validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content=normalize_validation_err(exc))


async def _http_error(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content=normalize_http_exc(exc.detail))


def create_app() -> FastAPI:
    app = FastAPI(title="BottleOps Core", version=VERSION)
    app.add_exception_handler(EngineError, _engine_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(HTTPException, _http_error)

    app.include_router(pricing_router, prefix="/app")
    app.include_router(orders_router, prefix="/app")
    app.include_router(production_router, prefix="/app")

    @app.get("/health")
    def health():
        return {"ok": True, "version": VERSION}

    return app


app = create_app()

__all__ = ["app", "create_app"]
