import logging
import traceback
from contextlib import asynccontextmanager
from typing import Any, Dict, Sequence

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from compound_backend.api.responses import error_response
from compound_backend.api.router import api_router
from compound_backend.config import Settings, get_settings
from compound_backend.core.observability import configure_logging
from compound_backend.features.compounds.errors import (
    CompoundConflictError,
    CompoundStorageError,
    CompoundValidationError,
)
from compound_backend.features.compounds.service import CompoundRepository
from compound_backend.storage.db import apply_schema, close_pool, create_pool
from compound_backend.storage.object_store import ObjectStorage

_REQUEST_LOCATIONS = {"body", "query", "path", "header", "cookie"}


def _field_path(loc: Sequence[Any]) -> str:
    parts = list(loc)
    if parts and parts[0] in _REQUEST_LOCATIONS:
        parts = parts[1:]
    return ".".join(str(part) for part in parts) or "request"


def validation_messages(errors: Sequence[Dict[str, Any]]) -> Dict[str, str]:
    """Collapse pydantic error entries into ``{"field.path": "message"}``."""

    messages: Dict[str, str] = {}
    for error in errors:
        messages.setdefault(_field_path(error.get("loc", ())), str(error.get("msg", "Invalid value")))
    return messages


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    logger = logging.getLogger("uvicorn.error")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pool = await create_pool(settings)
        if settings.db_run_migrations:
            async with pool.acquire() as conn:
                await apply_schema(conn)

        storage = ObjectStorage.from_settings(settings)
        if not await run_in_threadpool(storage.ensure_bucket):
            logger.warning("Object storage bucket %s is not reachable yet", storage.bucket)

        app.state.object_storage = storage
        app.state.compound_repository = CompoundRepository(pool, storage, settings)
        logger.info("%s %s started environment=%s", settings.app_name, settings.app_version, settings.environment)
        try:
            yield
        finally:
            app.state.compound_repository = None
            app.state.object_storage = None
            await close_pool(pool)

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

    logger.info("Configured FastAPI CORS allow_origins=%s", settings.cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_response(400, "Validation failed", validation_messages(exc.errors()))

    @app.exception_handler(CompoundValidationError)
    async def compound_validation_handler(request: Request, exc: CompoundValidationError):
        return error_response(400, exc.message, exc.field_errors)

    @app.exception_handler(CompoundConflictError)
    async def compound_conflict_handler(request: Request, exc: CompoundConflictError):
        return error_response(409, str(exc))

    @app.exception_handler(CompoundStorageError)
    async def compound_storage_handler(request: Request, exc: CompoundStorageError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc.message)
        return error_response(500, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        response = error_response(exc.status_code, str(exc.detail))
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Log unhandled exceptions and return the error envelope with CORS
        headers, since the middleware does not see this response.
        """
        logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method,
            request.url.path,
            str(exc),
            traceback.format_exc(),
        )
        response = error_response(500, "Internal server error")

        origin = request.headers.get("origin", "")
        if origin:
            allow_all = "*" in settings.cors_origins
            if allow_all or origin in settings.cors_origins:
                response.headers["Access-Control-Allow-Origin"] = "*" if allow_all and not settings.cors_credentials else origin
                if settings.cors_credentials:
                    response.headers["Access-Control-Allow-Credentials"] = "true"
        return response

    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
