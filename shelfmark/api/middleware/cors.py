"""
CORS Configuration

The cataloguing UI runs on a separate origin and downloads MARC exports,
so Content-Disposition has to be exposed to the browser.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware


@dataclass
class CORSConfig:
    """CORS configuration settings."""

    allowed_origins: List[str] = field(default_factory=list)
    allow_credentials: bool = False
    allowed_methods: List[str] = field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    allowed_headers: List[str] = field(default_factory=lambda: [
        "Accept",
        "Content-Type",
        "X-Request-ID",
    ])
    expose_headers: List[str] = field(default_factory=lambda: [
        "X-Request-ID",
        "Content-Disposition",
        "Retry-After",
    ])
    max_age: int = 3600

    # Development only
    allow_all_origins: bool = False


def get_cors_config(environment: Optional[str] = None) -> CORSConfig:
    """
    CORS settings for an environment.

    Development allows every origin. Elsewhere origins come from
    ``CORS_ALLOWED_ORIGINS`` (comma separated).
    """
    if environment is None:
        environment = os.getenv("SHELFMARK_ENV", "development")

    origins = [
        origin.strip()
        for origin in os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")
        if origin.strip()
    ]
    if environment == "development":
        return CORSConfig(
            allowed_origins=origins or ["http://localhost:5173", "http://localhost:3000"],
            allow_all_origins=True,
        )
    return CORSConfig(allowed_origins=origins, max_age=7200)


def setup_cors(app: FastAPI, config: Optional[CORSConfig] = None) -> None:
    """Add CORS middleware to the app."""
    config = config or get_cors_config()

    # Wildcard origin cannot be combined with credentials
    origins = ["*"] if config.allow_all_origins else config.allowed_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=config.allow_credentials and not config.allow_all_origins,
        allow_methods=config.allowed_methods,
        allow_headers=config.allowed_headers,
        expose_headers=config.expose_headers,
        max_age=config.max_age,
    )
