"""
FastAPI application entry point for the admin backend.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.config import get_settings
from backend.db import AlreadyExistsError, NotFoundError
from backend.routes import router
from broadcast.errors import BroadcastError


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message})


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="CA Firm Admin Backend", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return _error_response(404, str(exc))

    @app.exception_handler(AlreadyExistsError)
    async def already_exists(request: Request, exc: AlreadyExistsError):
        return _error_response(409, str(exc))

    @app.exception_handler(BroadcastError)
    async def broadcast_error(request: Request, exc: BroadcastError):
        return _error_response(exc.http_status, exc.message)

    return app


app = create_app()
