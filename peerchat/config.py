from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Service settings loaded from environment variables.
    Environment variables take precedence over the .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database
    DATABASE_URL: str = "sqlite:///./peerchat.db"

    # Token verification (tokens are issued by the auth service)
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Browser origins allowed by CORS
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:5174"]

    # Per-connection send limit, 0 disables it
    RATE_LIMIT_MESSAGES_PER_MINUTE: int = 0

    # Create the demo rooms on startup
    SEED_DEMO_ROOMS: bool = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Tests call get_settings.cache_clear() after changing the environment.
    """
    return Settings()
