"""
Configuration management for the identity service.

Settings are loaded once at startup from environment variables (and .env),
validated, stored on the application and handed to the collaborators that
need them.
"""
from pathlib import Path
from typing import List, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "change-this-secret-in-prod"
DEFAULT_TEMPLATE_DIR = str(Path(__file__).parent / "templates")


class Settings(BaseSettings):
    """Identity service configuration loaded from environment variables"""

    # Runtime
    ENVIRONMENT: Literal["development", "production", "test"] = "development"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "./logs"
    CORS_ORIGINS: List[str] = ["*"]

    # Database
    DATABASE_URL: str = "sqlite:///./identity.db"

    # Tokens
    JWT_SECRET: str = DEFAULT_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    RESET_TOKEN_EXPIRE_MINUTES: int = 10

    # One-time codes
    OTP_LENGTH: int = 6
    OTP_EXPIRE_MINUTES: int = 15
    OTP_MAX_FAILED_ATTEMPTS: int = 5
    OTP_ATTEMPT_WINDOW_MINUTES: int = 15

    # Mail
    EMAIL_BACKEND: Literal["console", "smtp"] = "console"
    EMAIL_HOST: str = "localhost"
    EMAIL_PORT: int = 587
    EMAIL_USER: str = ""
    EMAIL_PASSWORD: str = ""
    EMAIL_FROM: str = "no-reply@example.com"
    EMAIL_USE_TLS: bool = True
    # Implicit TLS (usually port 465); STARTTLS is skipped when set
    EMAIL_USE_SSL: bool = False
    TEMPLATE_DIR: str = DEFAULT_TEMPLATE_DIR

    # Uploads
    UPLOAD_DIRECTORY: str = "./uploads"
    MAX_FILE_SIZE: int = 5 * 1024 * 1024

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level '{value}'")
        return value

    @field_validator("EMAIL_PORT")
    @classmethod
    def _port_in_range(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError("EMAIL_PORT must be between 1 and 65535")
        return value

    @field_validator("OTP_LENGTH")
    @classmethod
    def _otp_length_in_range(cls, value: int) -> int:
        if not 4 <= value <= 8:
            raise ValueError("OTP_LENGTH must be between 4 and 8 digits")
        return value

    @field_validator(
        "ACCESS_TOKEN_EXPIRE_MINUTES",
        "REFRESH_TOKEN_EXPIRE_DAYS",
        "RESET_TOKEN_EXPIRE_MINUTES",
        "OTP_EXPIRE_MINUTES",
        "OTP_MAX_FAILED_ATTEMPTS",
        "OTP_ATTEMPT_WINDOW_MINUTES",
        "MAX_FILE_SIZE",
    )
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive integer")
        return value

    @model_validator(mode="after")
    def _secret_set_in_production(self) -> "Settings":
        if self.ENVIRONMENT == "production" and self.JWT_SECRET == DEFAULT_JWT_SECRET:
            raise ValueError("JWT_SECRET must be set in production")
        if not self.JWT_SECRET:
            raise ValueError("JWT_SECRET must not be empty")
        return self

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")
