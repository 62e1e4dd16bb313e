"""
Configuration management for DoseTrack
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "DoseTrack"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./dosetrack.db"
    DATABASE_ECHO: bool = False

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Reconciliation
    REFERENCE_TIMEZONE: str = "Asia/Kolkata"
    GRACE_PERIOD_MINUTES: int = 30
    MINUTE_TICK_INTERVAL_SECONDS: int = 60
    DAILY_RESET_TIME: str = "00:00"  # HH:MM in REFERENCE_TIMEZONE
    SCHEDULER_ENABLED: bool = True
    OPTIMISTIC_LOCK_MAX_ATTEMPTS: int = 3
    DUE_EVENT_BUFFER_SIZE: int = 500

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


class ReconciliationConfig:
    """Fixed policy constants for dose reconciliation"""

    TIME_OF_DAY_FORMAT: str = "%H:%M"
    TIME_OF_DAY_PATTERN: str = r"^([01]\d|2[0-3]):[0-5]\d$"
    FREQUENCY_CHOICES: list[str] = [
        "once_daily", "twice_daily", "three_times", "custom"
    ]

    # Scheduler job identifiers
    MINUTE_TICK_JOB_ID: str = "minute_tick"
    DAILY_RESET_JOB_ID: str = "daily_reset"


settings = get_settings()
reconciliation_config = ReconciliationConfig()
