from pathlib import Path
from typing import Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Database
    DB_URL: str = "postgresql://postgres:password@db:5432/touradmin"
    DB_ECHO: bool = False  # Set to True for SQL query logging in development

    # Connection Pool Settings
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 3600  # Recycle connections after 1 hour

    # Translation provider (Google Translate v2)
    GOOGLE_TRANSLATE_API_KEY: str = ""
    TRANSLATE_API_URL: str = "https://translation.googleapis.com/language/translate/v2"
    TRANSLATE_DETECT_LANGUAGE: bool = True

    # Object storage
    MEDIA_ROOT: str = "media"
    MEDIA_BASE_URL: str = "http://localhost:8000/media"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Auth
    AUTH_STATE_TIMEOUT_SECONDS: float = 5.0

    # Lists
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # Seed data
    SEED_BOOKINGS_COUNT: int = 15

    # Rate Limiting
    ENABLE_RATE_LIMITING: bool = True
    RATE_LIMIT_TRANSLATE: str = "30/minute"
    RATE_LIMIT_SEED: str = "5/minute"
    RATE_LIMIT_LOGIN: str = "10/minute"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "app.log"

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

    # Password Security
    PASSWORD_MIN_LENGTH: int = 6

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parents[3] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )
