"""FastAPI application entrypoint.

Serve with ``uvicorn vidsum.main:create_app --factory``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from vidsum.core.config import Settings, get_settings
from vidsum.core.context import PipelineContext, build_context
from vidsum.errors import ApiError, UnknownError, ValidationError
from vidsum.routes import internal_router, jobs_router

logger = logging.getLogger(__name__)

_VALIDATION_MESSAGES: dict[tuple[str, str], str] = {
    ("POST", "/ingest"): "Valid URL is required",
    ("POST", "/worker"): "Invalid message format",
}


def _error_response(exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.payload.model_dump(mode="json", exclude_none=True),
    )


def create_app(settings: Settings | None = None, *, context: PipelineContext | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.getLogger("vidsum").setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.context.aclose()

    app = FastAPI(title="vidsum API", version="0.1.0", lifespan=lifespan)
    app.state.context = context or build_context(settings)

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        route = request.scope.get("route")
        route_path = getattr(route, "path", request.url.path)
        message = _VALIDATION_MESSAGES.get((request.method.upper(), route_path))
        if message is not None:
            return _error_response(ValidationError(message))
        return await request_validation_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("request.unhandled method=%s path=%s", request.method, request.url.path)
        return _error_response(UnknownError())

    app.include_router(jobs_router)
    app.include_router(internal_router)
    return app
