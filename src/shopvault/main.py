# src/shopvault/main.py
"""Main entry point for the ShopVault application."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shopvault.api.v1 import backup_router, cron_router, drive_router, system_router
from shopvault.api.v1.dependencies import rate_limit_headers, reissue_session_cookie
from shopvault.core.errors import ErrorKind, RateLimitError, ShopVaultError
from shopvault.core.settings import settings
from shopvault.db.session import create_tables
from shopvault.services.drive import close_http_client

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="ShopVault API",
    description="Encrypted backups, transactional restore and Google Drive storage",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(backup_router, prefix="/api/v1")
app.include_router(drive_router, prefix="/api/v1")
app.include_router(cron_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


def _error_response(
    request: Request,
    status_code: int,
    content: dict[str, Any],
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=content, headers=headers)
    result = getattr(request.state, "rate_limit", None)
    if result is not None:
        response.headers.update(rate_limit_headers(result))
    reissue_session_cookie(request, response)
    return response


@app.exception_handler(ShopVaultError)
async def shopvault_error_handler(request: Request, exc: ShopVaultError) -> JSONResponse:
    """Render classified errors as ``{success: false, error}``."""
    content: dict[str, Any] = {"success": False, "error": exc.public_message}
    headers: dict[str, str] = {}

    if exc.critical:
        content["critical"] = True
        logger.critical("%s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    elif exc.kind in (ErrorKind.CONFIGURATION, ErrorKind.RESTORE_INTEGRITY, ErrorKind.UPSTREAM):
        logger.error("%s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind.value, exc)

    if isinstance(exc, RateLimitError):
        content["retryAfter"] = exc.retry_after
        headers["Retry-After"] = str(exc.retry_after)

    return _error_response(request, exc.status_code, content, headers)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(
        request,
        exc.status_code,
        {"success": False, "error": str(exc.detail)},
        dict(exc.headers or {}),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("%s %s: invalid request body: %s", request.method, request.url.path, exc.errors())
    return _error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        {"success": False, "error": "Invalid request body"},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {"success": False, "error": "Internal server error"},
    )


@app.on_event("startup")
async def on_startup() -> None:
    if settings.storage_mode == "remote":
        create_tables()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await close_http_client()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": "ShopVault API",
        "version": settings.app_version,
        "description": "Encrypted backups, transactional restore and Google Drive storage",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
    uvicorn.run("shopvault.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
