"""
Request/Response logging middleware.

Access log for the API with:
- Request timing and a slow-lookup marker
- Correlation IDs, also bound into loguru context for the core modules
- ISBN of book/harvest lookups as a structured field
- Redaction of credentials in headers and bodies
"""

import json
import logging
import re
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request, Response
from loguru import logger as core_logger
from starlette.middleware.base import BaseHTTPMiddleware

# Context variable for request ID (accessible throughout request lifecycle)
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

logger = logging.getLogger("shelfmark.api")

_ISBN_PATH = re.compile(r"/(?:books|perpusnas)/([0-9Xx-]{10,17})$")


@dataclass
class LoggingConfig:
    """Configuration for request logging."""

    enabled: bool = True

    # Request bodies are JSON records; MARC responses are never logged
    log_request_body: bool = False
    max_body_log_size: int = 10000

    excluded_paths: set[str] = field(default_factory=lambda: {
        "/health",
        "/favicon.ico",
    })

    excluded_headers: set[str] = field(default_factory=lambda: {
        "authorization",
        "x-api-key",
        "cookie",
        "set-cookie",
    })

    redacted_fields: set[str] = field(default_factory=lambda: {
        "api_key",
        "apikey",
        "llm_api_key",
        "google_books_api_key",
        "token",
        "secret",
        "password",
    })

    # Fan-out lookups legitimately take several seconds
    slow_request_threshold: float = 8.0

    request_id_header: str = "X-Request-ID"


class StructuredLogFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs one JSON object per line for log aggregators.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        for attr in ("request_data", "response_data", "duration_ms", "isbn"):
            if hasattr(record, attr):
                log_data[attr] = getattr(record, attr)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def redact_sensitive_data(
    data: Any,
    redacted_fields: set[str],
    replacement: str = "[REDACTED]",
) -> Any:
    """Recursively replace values of sensitive keys."""
    if isinstance(data, dict):
        return {
            key: replacement if str(key).lower() in redacted_fields else redact_sensitive_data(value, redacted_fields, replacement)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact_sensitive_data(item, redacted_fields, replacement) for item in data]
    return data


def get_request_id() -> str:
    """Get current request ID from context."""
    return request_id_var.get()


def isbn_from_path(path: str) -> Optional[str]:
    """ISBN path parameter of lookup routes, as sent by the client."""
    match = _ISBN_PATH.search(path)
    return match.group(1) if match else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access logging with request IDs."""

    def __init__(self, app: FastAPI, config: Optional[LoggingConfig] = None):
        super().__init__(app)
        self.config = config or LoggingConfig()

    def _filter_headers(self, headers: dict[str, str]) -> dict[str, str]:
        return {
            key: value if key.lower() not in self.config.excluded_headers else "[REDACTED]"
            for key, value in headers.items()
        }

    async def _get_request_body(self, request: Request) -> Optional[str]:
        try:
            body = await request.body()
        except Exception:
            return "[FAILED TO READ BODY]"

        if len(body) > self.config.max_body_log_size:
            return f"[BODY TOO LARGE: {len(body)} bytes]"
        try:
            return json.dumps(redact_sensitive_data(json.loads(body), self.config.redacted_fields))
        except (json.JSONDecodeError, UnicodeDecodeError):
            return body.decode("utf-8", errors="replace")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.config.request_id_header) or str(uuid.uuid4())[:8]
        request_id_var.set(request_id)

        if not self.config.enabled or request.url.path in self.config.excluded_paths:
            response = await call_next(request)
            response.headers[self.config.request_id_header] = request_id
            return response

        start_time = time.time()
        request_data = {
            "method": request.method,
            "path": request.url.path,
            "query": str(request.url.query) or None,
            "headers": self._filter_headers(dict(request.headers)),
            "client_ip": request.client.host if request.client else None,
        }
        if self.config.log_request_body and request.method in ("POST", "PUT", "PATCH"):
            body = await self._get_request_body(request)
            if body:
                request_data["body"] = body

        with core_logger.contextualize(request_id=request_id):
            response = await call_next(request)

        duration = time.time() - start_time
        duration_ms = round(duration * 1000, 2)
        response.headers[self.config.request_id_header] = request_id

        if response.status_code >= 500:
            log_level = logging.ERROR
        elif response.status_code >= 400 or duration > self.config.slow_request_threshold:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        message = f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms}ms)"
        if duration > self.config.slow_request_threshold:
            message = f"[SLOW] {message}"

        extra = {
            "request_data": request_data,
            "response_data": {
                "status_code": response.status_code,
                "content_type": response.headers.get("content-type"),
            },
            "duration_ms": duration_ms,
        }
        isbn = isbn_from_path(request.url.path)
        if isbn:
            extra["isbn"] = isbn

        logger.log(log_level, message, extra=extra)
        return response


def setup_logging(
    app: FastAPI,
    config: Optional[LoggingConfig] = None,
    structured: bool = True,
) -> None:
    """
    Configure logging middleware and formatters.

    Args:
        app: FastAPI application instance.
        config: Logging configuration.
        structured: Use JSON structured logging format.
    """
    config = config or LoggingConfig()

    if structured:
        api_logger = logging.getLogger("shelfmark")
        if not any(isinstance(h.formatter, StructuredLogFormatter) for h in api_logger.handlers):
            handler = logging.StreamHandler()
            handler.setFormatter(StructuredLogFormatter())
            api_logger.addHandler(handler)
        api_logger.setLevel(logging.INFO)

    app.add_middleware(RequestLoggingMiddleware, config=config)
