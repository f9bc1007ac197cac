"""
Configuration module - loads all env vars using pydantic-settings.
This is the SINGLE SOURCE OF TRUTH for all config values.

JWT_SECRET and SALT_ROUNDS have no defaults: the process refuses to start
without them.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # MongoDB
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "batch_manager"

    # JWT Auth
    jwt_secret: str = Field(..., min_length=1)
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60
    jwt_extended_expire_minutes: int = 1440  # student/parent logins

    # bcrypt cost factor
    salt_rounds: int = Field(..., ge=4, le=31)

    # App
    port: int = 3000
    debug: bool = False
    log_level: str = "INFO"

    # Pydantic v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
