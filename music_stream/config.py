"""
Configuration and settings for the music streaming API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="")

    # Database (MongoDB expected)
    mongo_uri: Optional[str] = Field(default=None)
    mongo_database: str = Field(default="db")
    track_collection: str = Field(default="songs")
    playlist_collection: str = Field(default="playlists")

    # External login service, host[:port] without scheme
    login_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Media conversion (deprecated ingestion path)
    converter_binary: str = Field(default="ffmpeg")
    media_work_dir: Optional[str] = Field(default=None)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8002)
    shutdown_grace_seconds: int = Field(default=5)
    log_level: str = Field(default="INFO")
    cors_allow_origins: str = Field(default="*")

    def cors_origins(self) -> list[str]:
        origins = [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]
        return origins or ["*"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
