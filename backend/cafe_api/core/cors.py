"""
CORS (Cross-Origin Resource Sharing) configuration.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cafe_shared.config.settings import settings


# Default origins for development (Expo web / local dashboard)
DEFAULT_CORS_ORIGINS = [
    "http://localhost:8081",  # Expo web
    "http://localhost:19006",  # Expo web (legacy)
    "http://localhost:5173",  # Staff dashboard
    "http://127.0.0.1:8081",
    "http://127.0.0.1:19006",
    "http://127.0.0.1:5173",
]

ALLOWED_METHODS = ["GET", "POST", "OPTIONS"]

ALLOWED_HEADERS = [
    "Authorization",
    "Content-Type",
    "X-User-Id",
    "X-Request-ID",
    "Accept",
]


def get_cors_origins() -> list[str]:
    """
    ALLOWED_ORIGINS from settings (comma-separated) when set, otherwise the
    development defaults.
    """
    if settings.allowed_origins:
        return [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    return DEFAULT_CORS_ORIGINS


def configure_cors(app: FastAPI) -> None:
    """Configure CORS middleware on the FastAPI application."""
    max_age = 0 if settings.environment == "development" else 600

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=ALLOWED_METHODS,
        allow_headers=ALLOWED_HEADERS,
        expose_headers=["X-Request-ID", "X-Order-Id"],
        max_age=max_age,
    )
