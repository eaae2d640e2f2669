"""
Application settings and configuration management.

This module handles all environment variables, API keys, and application
configuration using Pydantic settings management for type safety and validation.

Credentials are optional at load time. A component that needs a missing
credential raises ConfigurationError when it is first requested, which the
API reports as "service unavailable".
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All sensitive values are stored as SecretStr to prevent accidental logging.
    Settings are validated on load and cached for performance.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # API Keys
    anthropic_api_key: Optional[SecretStr] = Field(default=None, alias="ANTHROPIC_API_KEY")
    resend_api_key: Optional[SecretStr] = Field(default=None, alias="RESEND_API_KEY")
    jwt_secret: Optional[SecretStr] = Field(default=None, alias="JWT_SECRET")

    # Application Configuration
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        alias="APP_ENV"
    )
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        alias="LOG_LEVEL"
    )
    log_json: bool = Field(default=True, alias="LOG_JSON")
    log_dir: Path = Field(default=Path("logs"), alias="LOG_DIR")

    # Model Configuration
    claude_model: str = Field(
        default="claude-sonnet-4-20250514",
        alias="CLAUDE_MODEL"
    )
    claude_max_tokens: int = Field(default=4000, alias="CLAUDE_MAX_TOKENS")
    claude_max_retries: int = Field(default=2, ge=1, alias="CLAUDE_MAX_RETRIES")
    claude_correction_attempts: int = Field(default=0, ge=0, alias="CLAUDE_CORRECTION_ATTEMPTS")
    ai_timeout_seconds: float = Field(default=60.0, gt=0, alias="AI_TIMEOUT_SECONDS")

    # Scraping
    marketplace_base_url: str = Field(
        default="https://www.amazon.co.uk",
        alias="MARKETPLACE_BASE_URL",
    )
    marketplace_timeout_seconds: float = Field(default=10.0, gt=0, alias="MARKETPLACE_TIMEOUT_SECONDS")
    site_timeout_seconds: float = Field(default=15.0, gt=0, alias="SITE_TIMEOUT_SECONDS")

    # E-mail
    email_provider: Literal["resend", "smtp"] = Field(default="resend", alias="EMAIL_PROVIDER")
    email_from: str = Field(default="contact@e-ctrl.co.uk", alias="EMAIL_FROM")
    email_from_name: str = Field(default="E-Ctrl", alias="EMAIL_FROM_NAME")
    email_timeout_seconds: float = Field(default=15.0, gt=0, alias="EMAIL_TIMEOUT_SECONDS")
    smtp_host: Optional[str] = Field(default=None, alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_username: Optional[str] = Field(default=None, alias="SMTP_USERNAME")
    smtp_password: Optional[SecretStr] = Field(default=None, alias="SMTP_PASSWORD")

    # Persistence
    store_backend: Literal["memory", "disabled"] = Field(default="memory", alias="STORE_BACKEND")
    store_timeout_seconds: float = Field(default=5.0, gt=0, alias="STORE_TIMEOUT_SECONDS")

    # Sessions
    jwt_expiry_days: int = Field(default=7, ge=1, alias="JWT_EXPIRY_DAYS")
    bcrypt_rounds: int = Field(default=12, ge=4, le=31, alias="BCRYPT_ROUNDS")

    @field_validator("log_dir", mode="before")
    @classmethod
    def validate_directories(cls, v: str | Path) -> Path:
        """Ensure directories exist."""
        path = Path(v)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @field_validator("anthropic_api_key", mode="before")
    @classmethod
    def validate_anthropic_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate Anthropic API key format when one is provided."""
        if not v:
            return None
        if not str(v).startswith("sk-"):
            raise ValueError("Invalid Anthropic API key format")
        return v

    @field_validator("marketplace_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def configured_services(self) -> dict[str, bool]:
        """Report which outbound services have the credentials they need."""
        if self.email_provider == "smtp":
            email_ready = bool(self.smtp_host)
        else:
            email_ready = self.resend_api_key is not None
        return {
            "ai": self.anthropic_api_key is not None,
            "email": email_ready,
            "store": self.store_backend != "disabled",
            "sessions": self.jwt_secret is not None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
