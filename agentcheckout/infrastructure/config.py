"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service
    service_name: str = "agentcheckout"
    api_version: str = "0.1.0"
    debug: bool = False

    # Authentication (HTTP API); disabled when unset
    api_key: str | None = None

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Sessions
    session_ttl_seconds: int = Field(default=3600, gt=0, description="Lifetime of a checkout session")
    sweep_interval_seconds: int = Field(default=300, gt=0, description="Interval of the expiry sweep")

    # Payments
    payment_gateway: Literal["simulated", "stripe"] = "simulated"
    redirect_ttl_seconds: int = Field(default=3600, gt=0, description="Expiry of hosted payment pages")
    token_ttl_seconds: int = Field(default=1800, gt=0, description="Expiry of granted payment tokens")
    gateway_timeout_seconds: float = Field(default=15.0, gt=0, description="Bound on each gateway call")
    gateway_test_mode: bool = True
    refund_late_payments: bool = True
    success_url: str = "https://example.com/checkout/success?session_id={CHECKOUT_SESSION_ID}"
    cancel_url: str = "https://example.com/checkout/cancel"

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_api_base: str = "https://api.stripe.com"

    # Simulated gateway notifications
    webhook_secret: str = "dev-webhook-secret-change-in-production"

    # Catalog
    default_currency: str = "USD"
    catalog_path: str | None = None

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _check_gateway(self) -> "Settings":
        if self.payment_gateway == "stripe" and not self.stripe_secret_key.startswith("sk_"):
            raise ValueError("stripe_secret_key must start with 'sk_' when payment_gateway is 'stripe'")
        self.default_currency = self.default_currency.upper()
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
