"""Application configuration."""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

_ALL_CITIES = {"", "all", "todas", "*"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    api_base_url: str = "http://localhost:8080"
    request_timeout_seconds: float = 15.0
    upload_timeout_seconds: float = 120.0
    state_dir: Path = Path(".rising_stars")
    status_poll_interval_seconds: float = 2.0
    status_poll_timeout_seconds: float = 300.0
    rankings_limit: int = 50
    min_password_length: int = 8
    max_title_length: int = 100
    max_upload_bytes: int = 500 * 1024 * 1024
    default_country: str = "Colombia"
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def token_path(self) -> Path:
        return self.state_dir / "access_token"

    @property
    def votes_path(self) -> Path:
        return self.state_dir / "votes.json"


def parse_city_filter(raw: str | None) -> str | None:
    """Normalize a city filter; None means every city."""
    if raw is None:
        return None
    cleaned = raw.strip()
    if cleaned.lower() in _ALL_CITIES:
        return None
    return cleaned
