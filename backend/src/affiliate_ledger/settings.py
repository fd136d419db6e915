"""Application settings and configuration."""

import sys

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_TOKEN_DEFAULTS = {"change-me-in-production", "secret", "admin", ""}


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "affiliate-ledger"
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"  # console or json
    allowed_origins: str = "http://localhost:3000"
    public_base_url: str = "http://localhost:3000"

    # Access tokens (passed as Bearer tokens, checked by the API dependencies)
    admin_api_token: str = "change-me-in-production"
    storefront_api_token: str = "change-me-in-production"

    # Database
    database_url: str = "sqlite:///./affiliate_ledger.db"
    database_echo: bool = False

    # Attribution
    attribution_window_days: int = 30
    session_cookie_ttl_days: int = 30
    link_cookie_ttl_hours: int = 24

    # Creator defaults
    default_commission_rate: float = 10.0
    default_minimum_payout: float = 50.0

    # Payouts
    payout_currency: str = "usd"
    payout_claim_attempts: int = 3
    payout_gateway_timeout_seconds: float = 15.0
    payout_gateway_max_retries: int = 3

    # Stripe
    stripe_secret_key: str | None = None


# Global settings instance
settings = Settings()

# ── Security validation ──────────────────────────────────────────────
if settings.env == "production":
    for _name in ("admin_api_token", "storefront_api_token"):
        _value = getattr(settings, _name)
        if _value in _INSECURE_TOKEN_DEFAULTS or len(_value) < 32:
            print(
                f"\n❌  FATAL: {_name.upper()} is insecure or too short (min 32 chars).\n"
                "   Set a strong random value:  openssl rand -hex 32\n",
                file=sys.stderr,
            )
            sys.exit(1)
