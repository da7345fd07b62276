"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_JWT_SECRET = "dev-insecure-jwt-secret-change-me"


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    environment: str = "development"  # development or production

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations_on_startup: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "LLM Credit Gateway API"
    api_version: str = "0.1.0"
    api_description: str = "Credit-metered access to hosted LLM providers"
    cors_origins: str = "*"  # Comma-separated

    # Session tokens (users and admins)
    JWT_SECRET: str = DEV_JWT_SECRET  # generate with: openssl rand -hex 32
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24
    auth_cookie_name: str = "token"
    auth_cookie_secure: bool = True

    # Re-read an admin's permissions from the store on every request instead of
    # trusting the list embedded in the token at login.
    permission_refresh_per_request: bool = False

    # Google OAuth
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    google_hd_domain: str | None = None  # Restrict admin sign-in to one Workspace domain

    # Default super-admin created at startup when missing
    default_admin_name: str = "Administrator"
    default_admin_email: str = ""
    default_admin_password: str = ""

    # Bootstrap catalogue
    free_plan_monthly_credit: int = 100

    # Upstream LLM providers
    openai_base_url: str = "https://api.openai.com/v1"
    deepseek_base_url: str = "https://api.deepseek.com/v1"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    provider_timeout_seconds: float = 120.0

    # Admin access control
    ip_control_enabled: bool = True
    # Comma-separated proxy addresses whose X-Forwarded-For is honoured; "*" trusts all
    forwarded_allow_ips: str = "127.0.0.1"
    geoip_lookup_url: str = "http://ip-api.com/json/{ip}?fields=status,countryCode"
    geoip_timeout_seconds: float = 5.0
    country_list_url: str = "https://restcountries.com/v3.1/all?fields=name,cca2"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "llm-credit-gateway"
    trace_sample_rate: float = 1.0  # 1.0 = 100% sampling

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        This prevents silent failures that only manifest at runtime.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.is_production and self.JWT_SECRET == DEV_JWT_SECRET:
            errors.append("JWT_SECRET must be set in production")

        if self.jwt_expire_hours <= 0:
            errors.append(f"JWT_EXPIRE_HOURS must be positive, got: {self.jwt_expire_hours}")

        if self.log_format not in ("json", "console"):
            errors.append(f"LOG_FORMAT must be 'json' or 'console', got: {self.log_format}")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
