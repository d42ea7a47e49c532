"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    session_backend: str = "memory"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    lock_timeout_seconds: float = 5.0
    broadcast_send_timeout_seconds: float = 2.0
    enforce_deadline: bool = True
    history_limit: int = 20
    cors_allowed_origins: str | None = None
    host: str = "0.0.0.0"
    port: int = 8000
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_allowed_origins(raw: str | None) -> list[str]:
    """Parse allowed CORS origins from env."""
    if raw is None:
        return []
    cleaned = raw.strip()
    if cleaned == "*":
        return ["*"]
    return [chunk.strip() for chunk in cleaned.split(",") if chunk.strip()]
