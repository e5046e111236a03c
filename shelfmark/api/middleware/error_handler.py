"""
Error Handling for the Shelfmark API

Translates the exception hierarchy into the structured error body
``{error, code, detail, timestamp}``.
"""

import traceback
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError

from shelfmark.exceptions import ClassificationRateLimitedError, ShelfmarkException


def create_error_response(
    error: str,
    code: str,
    status_code: int,
    detail: Optional[str] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    """Create standardized error response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "code": code,
            "detail": detail,
            "timestamp": datetime.utcnow().isoformat(),
        },
        headers=headers,
    )


def setup_exception_handlers(app: FastAPI):
    """Register exception handlers with FastAPI app."""

    @app.exception_handler(ClassificationRateLimitedError)
    async def rate_limited_handler(request: Request, exc: ClassificationRateLimitedError):
        logger.warning(f"Classification rate limited on {request.url.path} (retry_after={exc.retry_after})")
        headers = None
        if exc.retry_after is not None:
            headers = {"Retry-After": str(max(1, int(round(exc.retry_after))))}
        return create_error_response(
            error=exc.message,
            code=exc.code,
            status_code=exc.status_code,
            detail=exc.detail,
            headers=headers,
        )

    @app.exception_handler(ShelfmarkException)
    async def shelfmark_exception_handler(request: Request, exc: ShelfmarkException):
        if exc.status_code >= 500:
            logger.error(f"Shelfmark error on {request.url.path}: {exc.code} - {exc.message} ({exc.detail})")
        else:
            logger.info(f"Shelfmark error on {request.url.path}: {exc.code} - {exc.message}")
        return create_error_response(
            error=exc.message,
            code=exc.code,
            status_code=exc.status_code,
            detail=exc.detail,
        )

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError):
        logger.warning(f"Validation error: {str(exc)}")
        return create_error_response(
            error="Validation Error",
            code="VALIDATION_ERROR",
            status_code=400,
            detail=str(exc),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception on {request.url.path}: {type(exc).__name__}: {str(exc)}\n"
            f"{traceback.format_exc()}"
        )
        # Don't expose internal error details
        return create_error_response(
            error="Internal Server Error",
            code="INTERNAL_ERROR",
            status_code=500,
            detail="An unexpected error occurred",
        )
