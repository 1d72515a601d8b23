"""FastAPI application entrypoint and configuration.

This module provides the main FastAPI application factory that sets up
logging, CORS middleware, the API routers, a health check endpoint, and the
handlers that turn service failures into structured JSON responses:

    {"success": false, "code": "...", "message": "...", "details": {...}}

Example:
    The application can be run with uvicorn:
        $ uvicorn slopewatch.main:app --reload

    Or imported and used programmatically:
        >>> from slopewatch.main import app
        >>> # Use app in ASGI server
"""

import logging
import urllib.parse

import fastapi
from fastapi import exceptions, responses, staticfiles
from fastapi.middleware import cors

from slopewatch.api import auth, backups, comments, images, slopes, users
from slopewatch.core import config, errors, logging_setup

logger = logging.getLogger(__name__)


async def handle_service_error(
    _request: fastapi.Request,
    exc: Exception,
) -> responses.JSONResponse:
    """Render a ServiceError with its own status and caller-safe body."""
    assert isinstance(exc, errors.ServiceError)
    if exc.status_code >= 500:
        logger.error("%s: %s", type(exc).__name__, exc.message)
    return responses.JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


async def handle_request_validation(
    _request: fastapi.Request,
    exc: Exception,
) -> responses.JSONResponse:
    """Render FastAPI request validation errors as a ValidationFailure."""
    assert isinstance(exc, exceptions.RequestValidationError)
    failure = errors.ValidationFailure(
        "Invalid request",
        details=errors.field_details(exc.errors()),
    )
    return responses.JSONResponse(
        status_code=failure.status_code,
        content=failure.to_dict(),
    )


async def handle_unexpected(
    request: fastapi.Request,
    exc: Exception,
) -> responses.JSONResponse:
    """Last resort: log the failure, tell the caller nothing about it."""
    logger.exception(
        "Unhandled error on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return responses.JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error"},
    )


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Sets up logging, CORS middleware, includes the API routers, registers
    the error handlers and adds a health check endpoint. CORS origins are
    configured from settings.

    Repositories and the object store are not created here; they are built
    on first use by the dependencies in ``slopewatch.api.deps``. Without an
    S3 bucket, locally stored images are served under the path of
    ``public_base_url``.

    Returns:
        Configured FastAPI application instance ready for ASGI server.

    Example:
        The app can be used with uvicorn or other ASGI servers:
            >>> app = create_app()
            >>> # Or use the module-level app instance:
            >>> from slopewatch.main import app
    """
    settings = config.get_settings()
    logging_setup.setup_logging(settings.log_level)
    app = fastapi.FastAPI(title="Slope Watch", version="0.1.0")

    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(slopes.router)
    app.include_router(images.router)
    app.include_router(comments.router)
    app.include_router(backups.router)

    app.add_exception_handler(errors.ServiceError, handle_service_error)
    app.add_exception_handler(
        exceptions.RequestValidationError,
        handle_request_validation,
    )
    app.add_exception_handler(Exception, handle_unexpected)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if not settings.s3_bucket:
        mount_path = urllib.parse.urlparse(settings.public_base_url).path
        app.mount(
            mount_path.rstrip("/") or "/uploads",
            staticfiles.StaticFiles(
                directory=settings.storage_dir,
                check_dir=False,
            ),
            name="uploads",
        )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
