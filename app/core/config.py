"""
app/core/config.py

Purpose: Application configuration

- Loads environment variables
- Centralizes config values (DB URI, bot tokens, gateway secrets, etc.)
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, validator
from pydantic_settings import BaseSettings
from typing import Optional, Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Validates all required configs on startup.
    """

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # MongoDB
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGODB_DB_NAME: str = Field(
        default="botfleet",
        description="MongoDB database name"
    )

    # Telegram
    TELEGRAM_API_URL: str = Field(
        default="https://api.telegram.org",
        description="Telegram Bot API base URL"
    )
    TELEGRAM_POLL_TIMEOUT: int = Field(
        default=30,
        description="Long-polling timeout for getUpdates in seconds"
    )

    # Master control plane
    MASTER_BOT_TOKEN: Optional[str] = Field(
        default=None,
        description="Bot token of the master (operator) bot"
    )
    MASTER_ADMIN_ID: Optional[str] = Field(
        default=None,
        description="Telegram chat id allowed to use the master bot"
    )
    ADMIN_API_TOKEN: Optional[str] = Field(
        default=None,
        description="If set, required in X-Admin-Token for /admin endpoints"
    )

    # WhatsApp gateway (WuzAPI)
    WUZAPI_BASE_URL: str = Field(
        default="http://localhost:8080",
        description="WuzAPI base URL"
    )
    WUZAPI_ADMIN_TOKEN: Optional[str] = Field(
        default=None,
        description="WuzAPI admin token"
    )
    WUZAPI_QR_DELAY_SECONDS: float = Field(
        default=1.5,
        description="Wait between session connect and QR fetch"
    )

    # Payment gateway (SyncPay master account)
    SYNCPAY_BASE_URL: str = Field(
        default="https://api.syncpayments.com.br",
        description="SyncPay API base URL"
    )
    SYNCPAY_MASTER_ID: Optional[str] = Field(
        default=None,
        description="Master SyncPay client id (receives subscription payments)"
    )
    SYNCPAY_MASTER_SECRET: Optional[str] = Field(
        default=None,
        description="Master SyncPay client secret"
    )
    BILLING_EMAIL_DOMAIN: str = Field(
        default="botfleet.app",
        description="Domain used for tenant_<id>@<domain> charge e-mails"
    )

    # OpenAI
    OPENAI_API_URL: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI API base URL"
    )
    DEFAULT_AI_MODEL: str = Field(
        default="gpt-4o-mini",
        description="Model used when a tenant has not chosen one"
    )
    DEFAULT_SYSTEM_PROMPT: str = Field(
        default="You are a helpful and intelligent assistant.",
        description="System prompt used when a tenant has not set one"
    )

    # Tenancy & billing
    DEFAULT_MAX_USERS: int = Field(
        default=10,
        description="User quota for tenants without an explicit max_users"
    )
    DEFAULT_SUBSCRIPTION_PRICE: float = Field(
        default=90.90,
        description="Fallback global price when system_config has none"
    )
    SUBSCRIPTION_PERIOD_DAYS: int = Field(
        default=30,
        description="Days added by each renewal"
    )

    # Session Management
    SESSION_CACHE_TTL_SECONDS: int = Field(
        default=300,
        description="Session cache entry lifetime in seconds"
    )

    # Application
    WEBHOOK_URL: str = Field(
        default="http://localhost:8788",
        description="Public base URL of this service (for gateway webhooks)"
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    PORT: int = Field(
        default=8788,
        description="HTTP port"
    )
    CORS_ORIGINS: list = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    @validator("ADMIN_API_TOKEN")
    def validate_admin_token(cls, v, values):
        """Ensure the admin endpoint is protected in production."""
        if values.get("ENVIRONMENT") == "production" and not v:
            raise ValueError("ADMIN_API_TOKEN is required in production environment")
        return v

    @property
    def webhook_base(self) -> str:
        """Public base URL without trailing slash."""
        return self.WEBHOOK_URL.rstrip("/")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()


def validate_settings():
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    errors = []

    if not settings.MONGODB_URL:
        errors.append("MONGODB_URL is required")

    if settings.SESSION_CACHE_TTL_SECONDS <= 0:
        errors.append("SESSION_CACHE_TTL_SECONDS must be positive")

    # Production-specific validations
    if settings.is_production:
        if not settings.WUZAPI_ADMIN_TOKEN:
            errors.append("WUZAPI_ADMIN_TOKEN is required in production")
        if not settings.SYNCPAY_MASTER_ID or not settings.SYNCPAY_MASTER_SECRET:
            errors.append("SYNCPAY_MASTER_ID and SYNCPAY_MASTER_SECRET are required in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
