from pathlib import Path
from typing import Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Database
    DB_URL: str = "postgresql://postgres:password@db:5432/nomadly"
    DB_ECHO: bool = False  # Set to True for SQL query logging in development

    # Connection Pool Settings
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30  # seconds
    DB_POOL_RECYCLE: int = 3600  # Recycle connections after 1 hour

    # Rate Limiting
    ENABLE_RATE_LIMITING: bool = True
    RATE_LIMIT_GENERATE: str = "5/minute"
    RATE_LIMIT_READ: str = "60/minute"
    RATE_LIMIT_WRITE: str = "30/minute"

    # Scheduling
    DEFAULT_DAY_START: str = "09:30"
    DEFAULT_DAY_END: str = "20:30"
    DEFAULT_TIMEZONE: str = "UTC"
    MAX_ITEMS_PER_DAY: int = 6
    VISIT_BUFFER_MINUTES: int = 30
    CANDIDATE_POOL_LIMIT: int = 40  # most POIs handed to the plan producer per day
    MAX_TRIP_DAYS: int = 30

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""  # empty: console only

    # CORS
    ALLOWED_ORIGINS: Union[list, str] = ["http://localhost:3000", "http://localhost:3001"]

    @field_validator('ALLOWED_ORIGINS', mode='before')
    @classmethod
    def parse_allowed_origins(cls, v):
        """Parse ALLOWED_ORIGINS from comma-separated string or list"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    # Security
    JWT_SECRET: str = "change_me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    PASSWORD_MIN_LENGTH: int = 8

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parents[3] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Pace presets cap how many visits a day may hold
PACE_MAX_ITEMS = {
    "relax": 3,
    "normal": 5,
    "max": 6,
}
