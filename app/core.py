"""Application configuration, settings management and logging setup.

This module defines the application settings loaded from environment
variables and provides helper functions for accessing cached settings
and configuring the standard logging handlers.
"""

import logging
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


LOG_FORMAT = "%(asctime)s %(levelname)-5s %(name)s %(message)s"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Attributes:
        DATABASE_URL: Database connection string.
        SECRET_KEY: Secret key used for JWT signing.
        ALGORITHM: Algorithm used to encode JWT tokens.
        ACCESS_TOKEN_EXPIRE_MINUTES: Access token lifetime in minutes.
        ALLOWED_ORIGINS: Allowed origins for CORS.
        REDIS_URL: Redis connection URL for rate limiting.
        RATE_LIMIT_TIMES: Requests allowed per window on auth routes.
        RATE_LIMIT_SECONDS: Length of the rate limit window.
        CLOUDINARY_URL: Cloudinary connection URL for contact photos.
        UPLOAD_DIR: Local directory for uploaded photos.
        MAX_PHOTO_SIZE: Maximum accepted photo size in bytes.
        BCRYPT_ROUNDS: Cost factor of password hashes.
        LOG_LEVEL: Root logging level.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    DATABASE_URL: str = "sqlite:///./contacts.db"
    SECRET_KEY: str = "dev-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]
    REDIS_URL: str = "redis://redis:6379"
    RATE_LIMIT_TIMES: int = 10
    RATE_LIMIT_SECONDS: int = 60
    CLOUDINARY_URL: str | None = None
    UPLOAD_DIR: str = "uploads"
    MAX_PHOTO_SIZE: int = 5 * 1024 * 1024
    BCRYPT_ROUNDS: int = 10
    LOG_LEVEL: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings.

    The settings object is cached to prevent reloading environment
    variables multiple times during application lifetime.
    """

    return Settings()


def configure_logging() -> None:
    """Configure root logging from the ``LOG_LEVEL`` setting."""

    logging.basicConfig(
        level=get_settings().LOG_LEVEL.upper(),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
