"""
Application configuration using Pydantic Settings.
Loads from environment variables with sensible defaults.
"""

from typing import Dict
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "MediQueue Token Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Storage: "memory" keeps tokens in-process, "mongo" persists them
    STORE_BACKEND: str = "memory"
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "mediqueue"

    # Queue day
    QUEUE_TIMEZONE: str = "UTC"

    # Wait-time estimation
    DEFAULT_CONSULT_MINUTES: float = 15
    MIN_WAIT_MINUTES: int = 5
    EMERGENCY_FACTOR: float = 0.3
    PEAK_START_HOUR: int = 10
    PEAK_END_HOUR: int = 12
    PEAK_FACTOR: float = 1.2
    LULL_START_HOUR: int = 14
    LULL_END_HOUR: int = 15
    LULL_FACTOR: float = 0.9

    # provider_id -> average consultation minutes, e.g. '{"dr-1": 12}'
    PROVIDER_CONSULT_MINUTES: Dict[str, float] = {}

    # Events buffered per live display connection before the oldest are dropped
    EVENT_BUFFER_SIZE: int = 256

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
