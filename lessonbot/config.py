"""
Application configuration management using Pydantic Settings.

This module provides a type-safe, centralized configuration system
that loads from environment variables with sensible defaults.
"""

from typing import Dict
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Difficulty tiers offered to learners. Keys are the tier numbers stored
# on each user row.
DIFFICULTY_LEVELS: Dict[int, Dict[str, str]] = {
    1: {"name": "Beginner", "description": "very simple, 1-3 words"},
    2: {"name": "Elementary", "description": "simple sentences, 4-6 words"},
    3: {"name": "Intermediate", "description": "moderate complexity, 7-10 words"},
    4: {"name": "Advanced", "description": "complex sentences, 11-15 words"},
    5: {"name": "Expert", "description": "very complex, 16+ words"},
}


class AppConfig(BaseSettings):
    """
    Application configuration loaded from environment variables.

    All settings can be overridden via .env file or environment variables.
    Settings are validated at startup using Pydantic.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===== API Keys =====
    TELEGRAM_BOT_TOKEN: str | None = Field(
        default=None,
        description="Telegram Bot API token (required for delivery and the bot menu)"
    )

    ANTHROPIC_API_KEY: str | None = Field(
        default=None,
        description="Anthropic API key for Claude (required for sentence generation)"
    )

    TON_API_KEY: str | None = Field(
        default=None,
        description="toncenter API key (optional, raises the public rate limit)"
    )

    # ===== Telegram =====
    TELEGRAM_API_URL: str = Field(
        default="https://api.telegram.org",
        description="Telegram Bot API base URL"
    )

    ENABLE_BOT_POLLING: bool = Field(
        default=True,
        description="Long-poll Telegram for menu/button updates"
    )

    BOT_POLL_TIMEOUT_SECONDS: int = Field(
        default=30,
        ge=0,
        le=60,
        description="Long-poll timeout passed to getUpdates"
    )

    @field_validator("ENABLE_BOT_POLLING", mode="before")
    @classmethod
    def parse_bool_string(cls, v):
        """Parse boolean from string values (env vars are strings)."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes", "on")
        return False

    # ===== Sentence Generation =====
    MODEL_NAME: str = Field(
        default="claude-3-5-haiku-20241022",
        description="Claude model used to write daily sentences"
    )

    TEMPERATURE: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="LLM temperature for sentence variety"
    )

    MAX_TOKENS: int = Field(
        default=1500,
        ge=100,
        le=8000,
        description="Maximum tokens per generated sentence payload"
    )

    GENERATION_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        gt=0,
        description="Timeout for a single generator call"
    )

    GENERATION_MAX_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per cache miss before GenerationError"
    )

    GENERATION_BASE_DELAY_SECONDS: float = Field(
        default=1.0,
        ge=0.0,
        description="Base backoff delay, doubled after every failed attempt"
    )

    DUPLICATE_RETRY_LIMIT: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Extra generations allowed when the sentence repeats recent history"
    )

    HISTORY_RETENTION: int = Field(
        default=30,
        ge=1,
        le=1000,
        description="Sentences kept per tier for duplicate suppression"
    )

    HISTORY_PROMPT_SIZE: int = Field(
        default=30,
        ge=0,
        le=1000,
        description="Recent sentences sent to the generator as an exclusion list"
    )

    # ===== Schedule =====
    TIMEZONE: str = Field(
        default="Asia/Bangkok",
        description="IANA timezone for the daily send and cache reset"
    )

    DAILY_SEND_HOUR: int = Field(default=9, ge=0, le=23, description="Local hour of the daily batch")
    DAILY_SEND_MINUTE: int = Field(default=0, ge=0, le=59, description="Local minute of the daily batch")

    CACHE_RESET_HOUR: int = Field(
        default=8,
        ge=0,
        le=23,
        description="Local hour at which the sentence cache rolls over to a new day"
    )

    # ===== Delivery =====
    SEND_INTERVAL_SECONDS: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Minimum spacing between consecutive outbound messages"
    )

    TRANSPORT_TIMEOUT_SECONDS: float = Field(
        default=15.0,
        gt=0,
        description="HTTP timeout for Telegram sendMessage"
    )

    # ===== TON Payments =====
    TON_API_URL: str = Field(
        default="https://toncenter.com/api/v2",
        description="toncenter HTTP API base URL"
    )

    TON_ADDRESS: str | None = Field(
        default=None,
        description="Receiving wallet address for subscription payments"
    )

    TON_AMOUNT: float = Field(
        default=1.0,
        gt=0,
        description="Subscription price in TON"
    )

    SUBSCRIPTION_DAYS: int = Field(
        default=30,
        ge=1,
        le=366,
        description="Days of lessons granted per payment"
    )

    LEDGER_PAGE_SIZE: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Most recent transactions scanned per payment check"
    )

    LEDGER_TIMEOUT_SECONDS: float = Field(
        default=15.0,
        gt=0,
        description="HTTP timeout for ledger queries"
    )

    PAYMENT_CHECK_MAX_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Ledger polls per pending payment before telling the user to try later"
    )

    PAYMENT_RETRY_DELAY_SECONDS: float = Field(
        default=3.0,
        ge=0.0,
        description="Delay between ledger polls"
    )

    PENDING_PAYMENT_TTL_SECONDS: int = Field(
        default=3600,
        ge=60,
        description="Pending payments older than this are purged"
    )

    PENDING_PURGE_INTERVAL_SECONDS: int = Field(
        default=300,
        ge=10,
        description="How often expired pending payments are purged"
    )

    PAYMENT_WEBHOOK_SECRET: str | None = Field(
        default=None,
        description="Shared secret expected in X-Webhook-Secret. Unset disables the check (dev only)."
    )

    ADMIN_API_KEY: str | None = Field(
        default=None,
        description="Key required in X-API-Key for /api/admin routes. Unset disables the check (dev only)."
    )

    WEBHOOK_DEDUP_TTL_SECONDS: int = Field(
        default=600,
        ge=1,
        description="Window in which redelivered webhooks/updates are ignored"
    )

    WEBHOOK_DEDUP_CAPACITY: int = Field(
        default=10000,
        ge=10,
        description="Maximum identifiers remembered by a dedup filter"
    )

    # ===== Database =====
    DATABASE_PATH: str = Field(
        default="./data/bot.db",
        description="SQLite database file"
    )

    # ===== Application Settings =====
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment mode: development or production"
    )

    DEBUG: bool = Field(
        default=False,
        description="Expose exception details in error responses"
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="API server host"
    )

    API_PORT: int = Field(
        default=3000,
        ge=1024,
        le=65535,
        description="API server port"
    )

    # ===== Computed Properties =====

    @property
    def difficulty_levels(self) -> Dict[int, Dict[str, str]]:
        return DIFFICULTY_LEVELS

    @property
    def telegram_configured(self) -> bool:
        """Check if the Telegram transport can be built."""
        return self.TELEGRAM_BOT_TOKEN is not None

    @property
    def llm_configured(self) -> bool:
        """Check if sentence generation is available."""
        return self.ANTHROPIC_API_KEY is not None

    @property
    def ledger_configured(self) -> bool:
        """Check if TON payment verification is available."""
        return self.TON_ADDRESS is not None

    @property
    def admin_auth_required(self) -> bool:
        return bool(self.ADMIN_API_KEY)


# Global configuration instance
# Import this in other modules: from lessonbot.config import config
config = AppConfig()


if __name__ == "__main__":
    print("Configuration loaded successfully!")
    print(f"Model: {config.MODEL_NAME}")
    print(f"Timezone: {config.TIMEZONE} (daily send {config.DAILY_SEND_HOUR:02d}:{config.DAILY_SEND_MINUTE:02d})")
    print(f"Telegram: {'✓' if config.telegram_configured else '✗'}")
    print(f"Claude: {'✓' if config.llm_configured else '✗'}")
    print(f"TON ledger: {'✓' if config.ledger_configured else '✗'}")
