"""
FastAPI application entry point for the admin backend.
"""

from __future__ import annotations

import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from siteadmin.config import Settings, get_settings
from siteadmin.content_routes import router as content_router
from siteadmin.db import Store
from siteadmin.dependencies import build_blob_store, build_cleanup_queue, build_store
from siteadmin.errors import AppError, StorageError
from siteadmin.queue import CleanupQueue
from siteadmin.routes import router
from siteadmin.seed import seed_defaults
from siteadmin.storage import BlobStore
from siteadmin.worker import drain

logger = logging.getLogger(__name__)


def error_body(
    message: str,
    *,
    error: Optional[str] = None,
    exc: Optional[BaseException] = None,
    development: bool = False,
    **extra,
) -> dict:
    body: dict = {"status": "error", "message": message}
    if error:
        body["error"] = error
    if development and exc is not None:
        body["stack"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    body.update(extra)
    return body


def register_error_handlers(app: FastAPI, settings: Settings) -> None:
    development = settings.is_development

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        if isinstance(exc, StorageError):
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.error)
        # Internal detail of auth failures stays in the logs.
        error = None if exc.status_code == 401 and not development else exc.error
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.message, error=error, exc=exc, development=development),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        return JSONResponse(
            status_code=400,
            content=error_body("Invalid request", error=details),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            content = error_body("Endpoint not found", path=request.url.path)
        else:
            content = error_body(str(exc.detail))
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_body(
                "Internal server error",
                error=str(exc) if development else None,
                exc=exc,
                development=development,
            ),
        )


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[Store] = None,
    blobs: Optional[BlobStore] = None,
    cleanup_queue: Optional[CleanupQueue] = None,
    seed: bool = True,
) -> FastAPI:
    """
    Build the application. Handles that are not injected are constructed from
    ``settings``; the store is disposed when the app shuts down.
    """
    settings = settings or get_settings()
    store = store or build_store(settings)
    blobs = blobs or build_blob_store(settings)
    cleanup_queue = cleanup_queue or build_cleanup_queue(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if seed:
            seed_defaults(store)
        yield
        drain(cleanup_queue, blobs)
        store.dispose()
        logger.info("Store disposed")

    app = FastAPI(title="Site Admin Backend", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.blobs = blobs
    app.state.cleanup_queue = cleanup_queue

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    register_error_handlers(app, settings)

    @app.get("/", include_in_schema=False)
    def root():
        prefix = settings.api_prefix
        return {
            "status": "success",
            "message": "Site Admin API Server",
            "version": app.version,
            "endpoints": {
                name: f"{prefix}/{name}"
                for name in ("test", "auth", "services", "hero", "contact", "gallery", "about")
            },
        }

    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(content_router, prefix=settings.api_prefix)
    return app


app = create_app()
