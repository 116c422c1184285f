"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Development-only signing key; rejected once a database is configured
DEFAULT_JWT_SECRET = "change-me"


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - empty means in-memory storage
    database_url: str = ""
    database_pool_size: int = 10
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations: bool = True

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Cognitive Profiler API"
    api_version: str = "0.1.0"
    api_description: str = "Cognitive profiling of text with metered token credits"
    cors_origins: str = "*"

    # Registered-user sessions
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 7
    anonymous_cookie_name: str = "anon_session"

    # Comma-separated e-mails that receive the admin role at registration
    admin_emails: str = ""

    @property
    def admin_email_set(self) -> set[str]:
        """Normalized set of e-mails that are registered as admins."""
        return {e.strip().lower() for e in self.admin_emails.split(",") if e.strip()}

    # Token policy
    free_token_limit: int = 1000
    free_input_limit: int = 500
    free_output_limit: int = 300
    free_output_reservation: int = 200  # expected output charged up-front for anonymous calls
    chars_per_token: int = 3
    upload_cost_per_100_words: int = 1
    min_upload_cost: int = 100
    max_upload_cost: int = 10000
    max_free_upload_cost: int = 1000
    unlimited_balance: int = 999_999_999
    token_cas_retries: int = 3

    # LLM providers
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    openai_report_model: str = "gpt-4"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-7-sonnet-20250219"
    anthropic_report_model: str = "claude-3-opus-20240229"
    deepseek_api_key: str = ""
    deepseek_api_url: str = "https://api.deepseek.com/v1/chat/completions"
    deepseek_model: str = "deepseek-chat"
    perplexity_api_key: str = ""
    perplexity_api_url: str = "https://api.perplexity.ai/chat/completions"
    perplexity_model: str = "llama-3.1-sonar-small-128k-online"
    provider_timeout_seconds: float = 120.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "cognitive-profiler-api"
    trace_sample_rate: float = 1.0  # 1.0 = 100% sampling

    # Payment Provider - Stripe
    stripe_api_key: str = ""  # Stripe secret key (sk_test_... or sk_live_...)
    stripe_webhook_secret: str = ""  # Stripe webhook signing secret (whsec_...)
    stripe_publishable_key: str = ""  # Stripe publishable key (pk_test_... or pk_live_...)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is invalid.
        An empty DATABASE_URL is allowed and selects in-memory storage.
        """
        errors: list[str] = []

        if self.database_url and not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.database_url and self.jwt_secret == DEFAULT_JWT_SECRET:
            errors.append("JWT_SECRET must be set when DATABASE_URL is configured")

        if self.chars_per_token <= 0:
            errors.append("CHARS_PER_TOKEN must be positive")

        if self.min_upload_cost > self.max_free_upload_cost:
            errors.append("MIN_UPLOAD_COST must not exceed MAX_FREE_UPLOAD_COST")

        if self.max_free_upload_cost > self.max_upload_cost:
            errors.append("MAX_FREE_UPLOAD_COST must not exceed MAX_UPLOAD_COST")

        if self.token_cas_retries < 1:
            errors.append("TOKEN_CAS_RETRIES must be at least 1")

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
    def database_enabled(self) -> bool:
        """Whether a relational database is configured."""
        return bool(self.database_url)


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
