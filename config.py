"""
Application configuration via Pydantic Settings.
All values can be overridden by environment variables or a .env file.
"""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Secret storage ─────────────────────────────────────────────────────
    SECRET_STORE_PATH: str = "./secrets"
    # Namespace holding account key secrets; unset = the issuer's namespace
    RESOURCE_NAMESPACE: Optional[str] = None

    # ── ACME transport ─────────────────────────────────────────────────────
    ACME_TIMEOUT: float = 30.0     # Per-request ceiling; the caller's deadline may cut it shorter
    ACME_CA_BUNDLE: str = ""       # Path to CA cert bundle; empty = system default
    ACME_INSECURE: bool = False    # Skip TLS verification (never use in production)

    # ── Logging ────────────────────────────────────────────────────────────
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    LOG_FORMAT: Literal["console", "json"] = "console"

    @field_validator("ACME_TIMEOUT")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("ACME_TIMEOUT must be positive")
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def upper_log_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


# Module-level singleton, import and use everywhere.
settings = Settings()
