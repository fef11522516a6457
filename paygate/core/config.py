"""Configuration management for the payment gateway service."""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = Field(default="Paygate Merchant API")
    version: str = Field(default="0.1.0")
    docs_url: str | None = Field(default="/docs")
    redoc_url: str | None = Field(default="/redoc")
    openapi_url: str = Field(default="/openapi.json")

    database_url: str = Field(default="sqlite+pysqlite:///./paygate.db")

    log_config_path: str | None = Field(default=None)
    log_level: str = Field(default="INFO")

    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=False)
    otel_exporter_endpoint: str | None = Field(default=None)

    aws_region: str = Field(default="us-east-1")
    s3_endpoint_url: str | None = Field(default=None)
    audit_log_bucket: str | None = Field(default=None)
    audit_log_prefix: str = Field(default="audit/payme")

    payme_provider: str = Field(default="payme")
    payme_merchant_login: str = Field(default="Paycom")
    payme_merchant_key: str | None = Field(default=None)
    payme_rate_limit_window_ms: int = Field(default=3_600_000)
    payme_rate_limit_max_requests: int = Field(default=10)
    trust_forwarded_for: bool = Field(default=False)

    payme_merchant_id: str | None = Field(default=None)
    payme_checkout_url: str = Field(default="https://checkout.paycom.uz")
    checkout_currency: str = Field(default="UZS")

    click_provider: str = Field(default="click")
    click_merchant_login: str = Field(default="Click")
    click_merchant_key: str | None = Field(default=None)
    click_allow_cancel_after_perform: bool = Field(default=False)

    plan_prices: dict[str, int] = Field(default_factory=lambda: {"free": 0, "pro": 999})
    free_plan: str = Field(default="free")
    subscription_period_days: int = Field(default=30)
    allow_cancel_after_perform: bool = Field(default=True)
    transition_max_attempts: int = Field(default=3)

    jwt_secret_key: str = Field(default="dev-secret-change-me")
    jwt_algorithm: str = Field(default="HS256")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
