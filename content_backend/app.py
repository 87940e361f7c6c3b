"""
FastAPI application entry point for the content backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from content_backend.config import Settings, get_settings
from content_backend.db import PostgresDbClient
from content_backend.dependencies import AppContext, build_context
from content_backend.errors import ContentApiError, StoreUnavailable
from content_backend.routes import build_entity_router, build_health_router

logger = logging.getLogger(__name__)


def connect_database(context: AppContext) -> None:
    """Prepare the database, honouring the configured startup failure policy."""
    db = context.db
    if not isinstance(db, PostgresDbClient):
        return
    logger.info("Connecting to database...")
    try:
        db.connect()
    except StoreUnavailable as exc:
        if context.settings.database_required:
            logger.error("Failed to connect to database: %s", exc.details)
            raise
        logger.warning(
            "Database unavailable at startup (%s); serving with 503s until it recovers",
            exc.details,
        )
        return
    logger.info("Connected to database successfully!")


@asynccontextmanager
async def lifespan(app: FastAPI):
    context: AppContext = app.state.context
    connect_database(context)
    try:
        yield
    finally:
        logger.info("Shutting down gracefully...")
        context.close()
        logger.info("Database and media clients closed")


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ContentApiError)
    async def content_error_handler(request: Request, exc: ContentApiError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
        return JSONResponse(status_code=exc.status_code, content=exc.as_payload())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": str(exc.errors())},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return JSONResponse(status_code=404, content={"error": "Route not found"})
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Something went wrong!", "details": str(exc)},
        )


def create_app(
    settings: Optional[Settings] = None, context: Optional[AppContext] = None
) -> FastAPI:
    settings = settings or get_settings()
    context = context or build_context(settings)
    app = FastAPI(title=settings.service_title, version="0.1.0", lifespan=lifespan)
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    install_error_handlers(app)

    app.include_router(build_health_router())
    for service in context.services.values():
        app.include_router(build_entity_router(service.schema))
    return app
