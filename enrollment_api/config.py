from __future__ import annotations

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


PRODUCTION_LIKE_ENVIRONMENTS = {"production", "prod", "live", "staging"}


class Settings(BaseSettings):
    """Application configuration read from environment variables."""

    # General
    api_bearer_token: str = "testtoken"
    api_basic_username: str = "admin"
    api_basic_password: str = "admin"
    app_env: str = "development"
    app_version: str = "0.1.0"
    backend_url: str = "http://localhost:8000"

    # Asaas gateway
    asaas_api_url: str = "https://sandbox.asaas.com/api/v3"
    asaas_api_key: str = ""
    asaas_user_agent: str = "Enrollment-API/1.0.0"
    # Shared secret Asaas sends in the asaas-access-token header; empty disables the check
    asaas_webhook_token: str = ""
    asaas_timeout_seconds: float = 60.0
    asaas_production_timeout_seconds: float = 120.0
    asaas_customer_max_retries: int = 3
    asaas_retry_backoff_seconds: float = 2.0

    # Enrollment rules
    payment_due_days: int = 7
    default_platform_commission: Decimal = Decimal("10")

    # Database (PostgreSQL)
    db_host: str = ""
    db_port: int = 5432
    db_user: str = ""
    db_password: str = ""
    db_name: str = ""
    db_schema: str = "enrollment"

    @property
    def is_production_like(self) -> bool:
        return self.app_env.strip().lower() in PRODUCTION_LIKE_ENVIRONMENTS

    @property
    def asaas_timeout(self) -> float:
        if self.is_production_like:
            return self.asaas_production_timeout_seconds
        return self.asaas_timeout_seconds

    @property
    def asaas_base_url(self) -> str:
        url = self.asaas_api_url.rstrip("/")
        # The bare domain answers with a redirect that drops the POST body
        if url == "https://asaas.com/api/v3":
            return "https://www.asaas.com/api/v3"
        return url

    @property
    def db_enabled(self) -> bool:
        return bool(self.db_host and self.db_user and self.db_name)

    @property
    def db_dsn(self) -> str:
        if not self.db_enabled:
            return ""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # Pydantic v2 settings config
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
