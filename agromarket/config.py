"""
Configuration for the Agromarket API.

``Settings`` is a dataclass whose defaults are read from environment
variables when this module is imported.  Set variables before importing,
or build a ``Settings`` instance by hand and pass it to ``create_app``.
"""

import os
from dataclasses import dataclass, field
from typing import List


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = os.getenv("PROJECT_NAME", "Agromarket API")
    api_version: str = os.getenv("API_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Sessions are opaque tokens kept in the store.  The token travels in
    # this cookie or in an ``Authorization: Bearer`` header.
    session_cookie_name: str = os.getenv("SESSION_COOKIE_NAME", "sid")
    session_ttl_seconds: int = int(os.getenv("SESSION_TTL_SECONDS", str(24 * 60 * 60)))
    cookie_secure: bool = _env_flag("COOKIE_SECURE")

    cors_origins: List[str] = field(default_factory=lambda: _env_list("CORS_ORIGINS", "*"))

    # Load demo farmers, buyers and products at startup.
    seed_demo_data: bool = _env_flag("SEED_DEMO_DATA")


settings = Settings()
