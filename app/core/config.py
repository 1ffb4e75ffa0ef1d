"""
app/core/config.py

Purpose: Application configuration

- Loads environment variables
- Centralizes config values (DB URI, secrets, limits, etc.)
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Literal, Optional


class Settings(BaseSettings):
    """Environment-driven settings, optionally read from .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # MongoDB
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGODB_DB_NAME: str = Field(
        default="cobraya",
        description="MongoDB database name"
    )

    # Twilio WhatsApp transport
    TWILIO_ACCOUNT_SID: Optional[str] = Field(default=None, description="Twilio account SID")
    TWILIO_AUTH_TOKEN: Optional[str] = Field(default=None, description="Twilio auth token")
    TWILIO_WHATSAPP_NUMBER: str = Field(
        default="whatsapp:+14155238886",
        description="Sender address for outbound WhatsApp messages"
    )
    TWILIO_SEND_TIMEOUT: float = Field(default=10.0, description="Outbound send timeout in seconds")

    # OpenAI intent parser (fallback resolver)
    OPENAI_API_KEY: Optional[str] = Field(default=None, description="OpenAI API key")
    OPENAI_MODEL: str = Field(default="gpt-4o-mini", description="Model used to parse free text")
    NLP_TIMEOUT_SECONDS: float = Field(
        default=6.0,
        description="Budget for one fallback parse; timeout resolves to 'unknown'"
    )

    # Stripe billing
    STRIPE_SECRET_KEY: Optional[str] = Field(default=None, description="Stripe secret API key")
    STRIPE_WEBHOOK_SECRET: Optional[str] = Field(default=None, description="Stripe webhook signing secret")
    STRIPE_PRICE_MONTHLY: Optional[str] = Field(default=None, description="Price id for the monthly plan")
    STRIPE_PRICE_YEARLY: Optional[str] = Field(default=None, description="Price id for the yearly plan")
    STRIPE_WEBHOOK_TOLERANCE: int = Field(default=300, description="Max signature age in seconds")
    CHECKOUT_SUCCESS_URL: str = Field(default="https://cobraya.mx/gracias")
    CHECKOUT_CANCEL_URL: str = Field(default="https://cobraya.mx/precios")
    PRICE_MONTHLY_LABEL: str = Field(default="$149 MXN / mes")
    PRICE_YEARLY_LABEL: str = Field(default="$1,490 MXN / año")

    # Dedup & rate limiting
    RATE_LIMIT_MESSAGES: int = Field(
        default=10,
        description="Maximum messages per user inside the rate limit window"
    )
    RATE_LIMIT_WINDOW_SECONDS: int = Field(default=60, description="Rate limit sliding window")
    DEDUP_SID_RETENTION_SECONDS: int = Field(
        default=48 * 3600,
        description="How long delivery ids are remembered (must exceed transport retries)"
    )
    DEDUP_HASH_WINDOW_SECONDS: int = Field(
        default=10,
        description="Identical body from the same phone inside this window is a retry"
    )

    # Usage metering & paywall
    FREE_DAILY_LIMIT: int = Field(default=15, description="Billable actions per day on the free plan")
    LOW_BALANCE_WARNING: int = Field(default=3, description="Remaining quota that triggers a nudge")
    TRIAL_DAYS: int = Field(default=7, description="Length of the one-time Pro trial")
    BILLING_GRACE_DAYS: int = Field(
        default=3,
        description="Days a past_due/unpaid subscription keeps Pro access"
    )
    PAY_KEYWORD: str = Field(default="pagar", description="Exact word that always starts checkout")
    BUSINESS_TIMEZONE: str = Field(
        default="America/Mexico_City",
        description="Timezone that defines the daily usage boundary"
    )

    # Daily digest job
    REMINDER_COOLDOWN_HOURS: int = Field(default=20)
    REMINDER_MAX_ITEMS: int = Field(default=5)
    REMINDER_MIN_AMOUNT: float = Field(default=50)

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_PREFIX: str = "/api/v1"
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    @field_validator("STRIPE_WEBHOOK_SECRET")
    @classmethod
    def validate_webhook_secret(cls, v, info: ValidationInfo):
        """Ensure the Stripe signing secret is set in production."""
        if info.data.get("ENVIRONMENT") == "production" and not v:
            raise ValueError("STRIPE_WEBHOOK_SECRET is required in production environment")
        return v

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()


def validate_settings():
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    errors = []

    if not settings.MONGODB_URL:
        errors.append("MONGODB_URL is required")

    if settings.FREE_DAILY_LIMIT <= settings.LOW_BALANCE_WARNING:
        errors.append("FREE_DAILY_LIMIT must be greater than LOW_BALANCE_WARNING")

    # Production-specific validations
    if settings.is_production:
        if not settings.TWILIO_ACCOUNT_SID or not settings.TWILIO_AUTH_TOKEN:
            errors.append("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN are required in production")
        if not settings.STRIPE_SECRET_KEY:
            errors.append("STRIPE_SECRET_KEY is required in production")
        if not (settings.STRIPE_PRICE_MONTHLY and settings.STRIPE_PRICE_YEARLY):
            errors.append("STRIPE_PRICE_MONTHLY and STRIPE_PRICE_YEARLY are required in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
