"""Central configuration for quotedesk."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

if os.path.exists(".dev.env"):
    load_dotenv(".dev.env")


def _float_env(name: str, default: float) -> float:
    """Read a float environment variable, falling back to ``default`` when unset or invalid."""
    raw = os.environ.get(name, "")
    try:
        return float(raw) if raw.strip() else default
    except ValueError:
        logger.warning("Invalid %s=%r; using %s", name, raw, default)
        return default


@dataclass
class Settings:
    """Configuration settings for quotedesk.

    All settings are loaded from environment variables with sensible defaults.
    """

    DATABASE_URL: str
    GOOGLE_API_KEY: str
    SHEETS_TIMEOUT_S: float
    CONFIG_CACHE_TTL_S: float
    METADATA_CACHE_TTL_S: float
    SUBMISSION_COOLDOWN_S: float
    RATE_LIMIT_RETENTION_S: float
    RATE_LIMIT_SWEEP_S: float


def _read_settings() -> Settings:
    return Settings(
        DATABASE_URL=os.environ.get("DATABASE_URL") or "sqlite:///quotedesk.db",
        GOOGLE_API_KEY=os.environ.get("GOOGLE_API_KEY") or "",
        SHEETS_TIMEOUT_S=_float_env("SHEETS_TIMEOUT_SECONDS", 10.0),
        CONFIG_CACHE_TTL_S=_float_env("CONFIG_CACHE_TTL_SECONDS", 120.0),
        METADATA_CACHE_TTL_S=_float_env("METADATA_CACHE_TTL_SECONDS", 30.0),
        SUBMISSION_COOLDOWN_S=_float_env("SUBMISSION_COOLDOWN_SECONDS", 120.0),
        RATE_LIMIT_RETENTION_S=_float_env("RATE_LIMIT_RETENTION_SECONDS", 120.0),
        RATE_LIMIT_SWEEP_S=_float_env("RATE_LIMIT_SWEEP_SECONDS", 60.0),
    )


settings = _read_settings()


def validate_settings() -> None:
    """Log warnings for configuration that will break features at runtime."""
    if not settings.GOOGLE_API_KEY:
        logger.warning("GOOGLE_API_KEY is not set; sheet requests will be rejected upstream.")
    if settings.RATE_LIMIT_RETENTION_S < settings.SUBMISSION_COOLDOWN_S:
        logger.warning(
            "RATE_LIMIT_RETENTION_SECONDS is shorter than SUBMISSION_COOLDOWN_SECONDS; "
            "reclaimed keys may submit again before their cooldown ends."
        )
