"""
directorio/config.py — Pydantic BaseSettings configuration
Firebase project, Redis rate-limit store, plan limits and paging defaults.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ────────────────────────────────────────────────────────────
    app_name: str = "Directorio de Negocios"
    environment: str = "development"
    log_level: str = "INFO"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000"]

    # ── Firebase (Auth, Firestore, Storage) ───────────────────────────────────
    firebase_project_id: Optional[str] = None
    firebase_credentials: Optional[str] = None  # path to service account JSON
    firebase_storage_bucket: Optional[str] = None
    firebase_web_api_key: str = ""
    identity_toolkit_url: str = "https://identitytoolkit.googleapis.com/v1"
    identity_timeout_seconds: float = 10.0

    # ── Collections ───────────────────────────────────────────────────────────
    businesses_collection: str = "businesses"
    users_collection: str = "users"

    # ── Rate limiting (token bucket, shared Redis) ────────────────────────────
    redis_url: str = "redis://127.0.0.1:6379/0"
    redis_timeout_seconds: float = 2.0
    rate_limits: dict[str, dict[str, int]] = {
        "auth": {"tokens": 5, "interval": 60},
        "business": {"tokens": 10, "interval": 60},
        "search": {"tokens": 30, "interval": 60},
        "review": {"tokens": 5, "interval": 60},
    }

    # ── Listing search ────────────────────────────────────────────────────────
    default_page_size: int = 12
    max_page_size: int = 50

    # ── Reviews ───────────────────────────────────────────────────────────────
    # Reads + conditional writes per review operation before giving up
    review_write_attempts: int = 3

    # ── Subscriptions ─────────────────────────────────────────────────────────
    free_subscription_days: int = 365
    max_images_free: int = 2
    max_images_premium: int = 10
    max_image_bytes: int = 5 * 1024 * 1024

    @field_validator("environment")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "production", "testing"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("rate_limits")
    @classmethod
    def validate_rate_limits(cls, v: dict[str, dict[str, int]]) -> dict[str, dict[str, int]]:
        for route, conf in v.items():
            if conf.get("tokens", 0) < 1 or conf.get("interval", 0) < 1:
                raise ValueError(f"rate limit for {route!r} needs tokens >= 1 and interval >= 1")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance. Use this everywhere."""
    return Settings()
