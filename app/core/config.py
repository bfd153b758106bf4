from __future__ import annotations

import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseAppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "Broker Seat Billing"
    ENV: str = "dev"
    DATABASE_URL: str | None = None
    JWT_SECRET: str = "change_me"
    REDIS_URL: str = "redis://localhost:6379/0"
    CORS_ALLOW_ORIGINS: list[str] = ["*"]
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    HSTS_SECONDS: int = 31_536_000
    CONTENT_SECURITY_POLICY: str = "default-src 'none'; frame-ancestors 'none'"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "plain"
    SENTRY_DSN: str | None = None

    # Rate limiting (slowapi). memory:// is fine for a single process.
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    BILLING_SEAT_CHANGE_RATE_LIMIT: str = "30/minute"

    # Seat billing
    BILLING_SEATS_CRON_SECRET: str | None = None  # Bearer secret for the rollover job endpoint
    BILLING_DEFAULT_CURRENCY: str = "BRL"
    BILLING_HISTORY_LIMIT: int = 10
    SEAT_LIMIT_MAX: int = 1_000_000
    UNIT_PRICE_MAX_CENTS: int = 10_000_000
    SEAT_ROLLOVER_BATCH_LIMIT: int = 100
    SEAT_ROLLOVER_INTERVAL_MINUTES: int = 60
    SEAT_CAPACITY_ALERT_THRESHOLD: int = 1

    @field_validator("BILLING_DEFAULT_CURRENCY", mode="before")
    @classmethod
    def normalize_currency(cls, v):
        """Store the default currency the same way requests are normalized."""
        if v is None:
            return v
        return str(v).strip().upper()

    @model_validator(mode="after")
    def _validate_required_fields(self) -> BaseAppSettings:
        # Convert Heroku's postgres:// URL to postgresql://
        if self.DATABASE_URL and self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)

        required_in_prod = (
            "DATABASE_URL",
            "JWT_SECRET",
            "BILLING_SEATS_CRON_SECRET",
        )
        if self.ENV.lower() == "prod":
            missing = [name for name in required_in_prod if not getattr(self, name)]
            if missing:
                raise ValueError(f"Missing required production settings: {', '.join(missing)}")
            if self.JWT_SECRET == "change_me":
                raise ValueError("Insecure default secrets in production: JWT_SECRET uses default placeholder")
        return self


class DevSettings(BaseAppSettings):
    ENV: str = "dev"
    DATABASE_URL: str = "sqlite:///./storage/dev.db"


class TestSettings(BaseAppSettings):
    ENV: str = "test"
    DATABASE_URL: str = "sqlite:///:memory:"
    BILLING_SEATS_CRON_SECRET: str = "test-cron-secret"


class ProdSettings(BaseAppSettings):
    ENV: str = "prod"
    CORS_ALLOW_ORIGINS: list[str] = []
    LOG_FORMAT: str = "json"


_ENV_TO_SETTINGS: dict[str, type[BaseAppSettings]] = {
    "dev": DevSettings,
    "development": DevSettings,
    "test": TestSettings,
    "testing": TestSettings,
    "prod": ProdSettings,
    "production": ProdSettings,
}


@lru_cache
def get_settings() -> BaseAppSettings:
    env_name = os.getenv("APP_ENV") or os.getenv("ENV") or "dev"
    env = env_name.lower()
    settings_cls = _ENV_TO_SETTINGS.get(env, DevSettings)
    return settings_cls()


settings = get_settings()
