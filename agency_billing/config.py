"""
Runtime configuration.

Every field can be overridden by an environment variable of the same name
or by a .env file in the working directory.
"""

from functools import lru_cache
from typing import Optional
import json

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Agency Billing"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # postgres:// and postgresql:// URLs are rewritten to the psycopg async driver
    DATABASE_URL: str = "sqlite+aiosqlite:///./agency_billing.db"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:8080",
    ]

    QUOTATION_NUMBER_PREFIX: str = "QT"
    INVOICE_NUMBER_PREFIX: str = "INV"
    DOCUMENT_NUMBER_PADDING: int = 4

    # Seconds before a store call is abandoned with a retryable error
    STORE_TIMEOUT_SECONDS: float = 15.0
    ALLOW_OVERPAYMENT: bool = True

    STATUS_JOBS_ENABLED: bool = True
    STATUS_JOB_HOUR: int = 1
    SCHEDULER_TIMEZONE: str = "Asia/Kolkata"

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def split_origins(cls, value):
        # Accepts a JSON array or a comma-separated string
        if not isinstance(value, str):
            return value
        if value.lstrip().startswith('['):
            return json.loads(value)
        return [origin.strip() for origin in value.split(',') if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
