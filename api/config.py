"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Database (postgresql+asyncpg in deployments, sqlite+aiosqlite in tests)
    database_url: str

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Authentication
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "effectiveness:auth"
    jwt_expire_minutes: int = 10080  # 7 days

    # Classification providers
    classifier_provider: Literal["openai", "openrouter", "mock"] | None = None
    openai_api_key: str | None = None
    openrouter_api_key: str | None = None
    classifier_model: str = "gpt-4o"
    classifier_temperature: float = 0.1
    classifier_max_tokens: int = 1000
    classifier_timeout_seconds: float = 30.0
    classifier_max_retries: int = 2
    classifier_max_concurrency: int = 3
    # Consecutive provider failures before calls short-circuit to fallbacks
    classifier_breaker_threshold: int = 5
    classifier_breaker_reset_seconds: float = 60.0

    # Insights
    insights_model: str | None = None  # Defaults to classifier_model
    insights_temperature: float = 0.3
    insights_max_tokens: int = 1500
    insights_timeout_seconds: float = 60.0
    insights_cache_minutes: int = 30

    # Refresh policy
    cooldown_hours: float = 24.0
    refresh_lock_backend: Literal["redis", "local"] = "redis"
    refresh_lock_timeout_seconds: float = 30.0

    # Acquisition
    screenshot_dir: str = "uploads/screenshots"
    screenshot_base_url: str = "/screenshots"
    fetch_timeout_seconds: float = 15.0
    fetch_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    capture_timeout_ms: int = 30000
    capture_settle_ms: int = 2000
    acquisition_timeout_seconds: float = 120.0
    pagespeed_api_key: str | None = None

    # Jobs
    effectiveness_job_timeout: int = 1800

    # Sentry
    sentry_dsn: str | None = None

    @field_validator("database_url")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Force the async driver for plain postgres URLs."""
        if v.startswith("postgres://"):
            v = "postgresql://" + v[len("postgres://") :]
        if v.startswith("postgresql://"):
            v = "postgresql+asyncpg://" + v[len("postgresql://") :]
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.env == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test mode."""
        return self.env == "test"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def resolved_classifier_provider(self) -> str | None:
        """Provider to use, falling back to whichever API key is configured."""
        if self.classifier_provider:
            return self.classifier_provider
        if self.openai_api_key:
            return "openai"
        if self.openrouter_api_key:
            return "openrouter"
        return None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    try:
        return Settings()  # type: ignore[call-arg]
    except Exception as e:
        if "validation" in type(e).__name__.lower() or "required" in str(e).lower():
            raise RuntimeError(
                "Missing required environment variables. Set DATABASE_URL and JWT_SECRET."
            ) from e
        raise
