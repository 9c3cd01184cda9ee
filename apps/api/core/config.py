"""Centralized application configuration via Pydantic Settings.

Loads all env vars into a typed Settings instance: Supabase access, the
ingestion API key, the Telegram bot, ledger locale and the recalculation
schedule.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Supabase
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_KEY: str = Field(
        default="",
        description="Supabase service-role key (API gateway and Celery worker)",
    )

    # Ingestion
    INGEST_API_KEY: str = Field(
        default="",
        description="Shared secret expected in the X-API-Key header; empty rejects every request",
    )

    # Telegram
    TELEGRAM_BOT_TOKEN: str = Field(default="", description="Bot API token")
    TELEGRAM_CHAT_ID: str = Field(default="", description="Chat that receives ingestion notifications")
    TELEGRAM_WEBHOOK_SECRET: str = Field(
        default="",
        description="Expected X-Telegram-Bot-Api-Secret-Token; empty disables the check",
    )
    TELEGRAM_TIMEOUT_SECONDS: float = Field(default=10.0, description="Bot API request timeout")

    # Ledger
    LEDGER_TIMEZONE: str = Field(default="Asia/Jakarta", description="Timezone used for calendar dates")
    LEDGER_CURRENCY: str = Field(default="IDR", description="Currency stamped on new transactions")
    LEDGER_USER_ID: str = Field(
        default="",
        description="Owner id written on bot and email rows; empty writes no owner",
    )
    RECALCULATION_INTERVAL_MINUTES: int = Field(
        default=60,
        description="Beat interval for full period summary recalculation",
    )

    # CORS
    ALLOWED_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Comma-separated allowed origins for CORS",
    )

    # Redis
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Python log level")
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production",
    )

    # App
    APP_VERSION: str = Field(default="0.1.0", description="Application version")

    @property
    def allowed_origins(self) -> list[str]:
        """Parse comma-separated origins into a list."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def log_level(self) -> str:
        return self.LOG_LEVEL

    model_config = {"env_file": ".env", "extra": "ignore"}


def get_settings() -> Settings:
    """Factory for Settings — allows test override."""
    return Settings()


# Module-level singleton (lazy: only created when first accessed)
try:
    settings = get_settings()
except Exception:
    # During testing, env vars may not be set — defer to test fixtures
    settings = None  # type: ignore[assignment]
