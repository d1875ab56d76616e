"""Configuration from environment (no hardcoded secrets)."""

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Backend settings from env."""

    model_config = SettingsConfigDict(env_prefix="SHARELINK_", extra="ignore")

    # Storage
    db_path: Path = Path("/data/sharelink.db")

    # JWT
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    refresh_token_expire_days: int = 7

    # Share links are {share_link_base_url}/{link_id}
    share_link_base_url: str = "https://codesharelinkapp.com/project"

    # Largest decoded file body accepted by PUT /files (bytes)
    max_file_bytes: int = 10 * 1024 * 1024

    # Live channel: pending events per connection before new ones are dropped
    notifier_queue_size: int = 256
    ws_auth_timeout_seconds: float = 10.0

    # CORS: set as comma-separated string in env (e.g. https://app.example.com)
    # so pydantic-settings does not try to JSON-decode it
    cors_origins: str = "http://localhost:8080"

    @property
    def cors_origins_list(self) -> List[str]:
        """CORS origins as a list (split on comma)."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()] or [
            "http://localhost:8080"
        ]

    # Server
    port: int = 8080

    # Logging (empty log_file = stderr only; level DEBUG|INFO|WARNING|ERROR)
    log_level: str = "INFO"
    log_file: str = ""


def get_settings() -> Settings:
    """Return application settings."""
    return Settings()
