"""Configuration settings"""

import os
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Database - supports both SQLite and PostgreSQL
    database_url: str = "sqlite+aiosqlite:///./data/station-checkin.db"
    lock_timeout_seconds: float = 5.0

    # Geofence
    geofence_radius_meters: float = 750.0
    client_distance_tolerance_m: float = 5.0

    # Roundel verification (OpenAI-compatible vision endpoint)
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o"
    openai_api_base: str = "https://api.openai.com/v1"
    ocr_timeout_seconds: float = 20.0
    ocr_confidence_threshold: float = 0.7

    # Application
    app_name: str = "Station Check-in"
    app_version: str = "1.0.0"
    debug: bool = False

    @property
    def is_sqlite(self) -> bool:
        """Check if database is SQLite"""
        return self.database_url.startswith("sqlite")

    @property
    def ai_verification_configured(self) -> bool:
        """Roundel verification is available when an API key is present"""
        return bool(self.openai_api_key)

    class Config:
        # Respect ENV_FILE environment variable, default to .env
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields for forward compatibility


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
