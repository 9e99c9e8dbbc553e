# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the main application factory for the SchoolPortal API.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from schoolportal import __version__
from schoolportal.api.container import Container, build_container
from schoolportal.api.endpoints import router as api_router
from schoolportal.api.middleware.auth import AuthMiddleware
from schoolportal.api.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from schoolportal.api.routes import health
from schoolportal.core.config import get_settings
from schoolportal.core.errors import ErrorKind, PortalError
from schoolportal.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events for the application.
    Initializes and cleans up:
    - Firebase, document store and providers (when no container was given)
    - Background dispatcher workers

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings = get_settings()
    logger.info(
        "Starting SchoolPortal API (environment=%s, debug=%s)",
        settings.environment,
        settings.debug,
    )

    # =========================================================================
    # Startup
    # =========================================================================

    if app.state.container is None:
        app.state.container = build_container(settings)
        logger.info("Service container built (document store: %s)", settings.document_store)

    container: Container = app.state.container
    try:
        container.start()
        logger.info("Background dispatcher started")
    except Exception as e:
        logger.warning("Failed to start background dispatcher: %s", str(e))

    yield

    # =========================================================================
    # Shutdown
    # =========================================================================

    try:
        await container.close()
        logger.info("Background dispatcher drained, document store closed")
    except Exception as e:
        logger.warning("Error closing service container: %s", str(e))

    logger.info("Shutting down SchoolPortal API")


async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    """Map a PortalError to its HTTP status and ``{"error": code}``."""
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer malformed input with 400 ``INVALID_INPUT`` and the offending fields."""
    fields = [".".join(str(part) for part in error.get("loc", ())[1:]) for error in exc.errors()]
    logger.info("%s %s invalid input: %s", request.method, request.url.path, fields)
    return JSONResponse(
        status_code=ErrorKind.INVALID_INPUT.http_status,
        content={"error": "INVALID_INPUT", "fields": fields},
    )


def create_app(container: Container | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    This factory function creates a new FastAPI instance with all
    middleware, routes, and configurations applied.

    Args:
        container: Prebuilt service container. Built from settings at
            startup when None.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()
    setup_logging(settings)

    app = FastAPI(
        title="SchoolPortal API",
        description="Student document requests, parent links and notifications",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        # Disable automatic redirects from /path to /path/
        # This prevents 307 redirects that lose Authorization headers
        redirect_slashes=False,
    )

    # =========================================================================
    # State
    # =========================================================================
    app.state.container = container
    app.state.limiter = limiter

    # =========================================================================
    # Exception handlers
    # =========================================================================
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(PortalError, portal_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # =========================================================================
    # Middleware (order matters - last added is first executed)
    # =========================================================================

    # Auth middleware - verifies bearer tokens and loads the caller's role
    app.add_middleware(AuthMiddleware)

    # CORS middleware (should be last to execute first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins_list,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
    )

    # =========================================================================
    # Routes
    # =========================================================================
    app.include_router(health.router, tags=["Health"])
    app.include_router(api_router)

    return app
