"""
Application configuration management using Pydantic Settings.

This module provides a type-safe, centralized configuration system
that loads from environment variables with sensible defaults.
"""

from pydantic import Field, field_validator
from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict


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
        extra="ignore",
        populate_by_name=True,
    )

    # ===== Provider Keys =====
    ANTHROPIC_API_KEY: str | None = Field(
        default=None,
        description="Anthropic API key for text generation jobs"
    )

    REPLICATE_API_TOKEN: str | None = Field(
        default=None,
        description="Replicate API token for image generation jobs"
    )

    # ===== Generation Models =====
    TEXT_MODEL_NAME: str = Field(
        default="claude-sonnet-4-20250514",
        description="Claude model used for blog outlines, captions and SEO metadata"
    )

    TEXT_TEMPERATURE: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="LLM temperature for text generation"
    )

    TEXT_MAX_TOKENS: int = Field(
        default=4000,
        ge=100,
        le=16000,
        description="Maximum tokens per text generation response"
    )

    TEXT_TIMEOUT_SECONDS: float = Field(
        default=120.0,
        gt=0,
        description="Provider-side timeout for a single text generation call"
    )

    IMAGE_MODEL: str = Field(
        default="google/imagen-3-fast",
        description="Replicate model for image generation"
    )

    # ===== Redis Queue =====
    REDIS_URL: str | None = Field(
        default=None,
        description="Redis URL for the generation queues (redis:// or rediss://)"
    )

    TEXT_QUEUE_NAME: str = Field(default="text-generation")
    TEXT_MAX_ATTEMPTS: int = Field(default=3, ge=1, le=10)
    TEXT_BACKOFF_SECONDS: float = Field(
        default=2.0,
        ge=0,
        description="Base retry delay for text jobs (doubles on each retry)"
    )
    TEXT_CONCURRENCY: int = Field(default=2, ge=1, le=32)
    TEXT_JOB_TIMEOUT_SECONDS: int = Field(default=300, ge=10)
    TEXT_KEEP_COMPLETED: int = Field(default=100, ge=0)
    TEXT_KEEP_FAILED: int = Field(default=500, ge=0)

    IMAGE_QUEUE_NAME: str = Field(default="image-generation")
    IMAGE_MAX_ATTEMPTS: int = Field(default=3, ge=1, le=10)
    IMAGE_BACKOFF_SECONDS: float = Field(
        default=5.0,
        ge=0,
        description="Base retry delay for image jobs (doubles on each retry)"
    )
    IMAGE_CONCURRENCY: int = Field(default=2, ge=1, le=32)
    IMAGE_JOB_TIMEOUT_SECONDS: int = Field(default=600, ge=10)
    IMAGE_KEEP_COMPLETED: int = Field(default=100, ge=0)
    IMAGE_KEEP_FAILED: int = Field(default=500, ge=0)

    RESULT_TTL_SECONDS: int = Field(
        default=86400,
        description="Keep finished queue jobs for 24 hours"
    )

    FAILURE_TTL_SECONDS: int = Field(
        default=604800,
        description="Keep failed queue jobs for 7 days"
    )

    # ===== Worker Leases =====
    HEARTBEAT_INTERVAL_SECONDS: float = Field(
        default=15.0,
        gt=0,
        description="How often a running job refreshes its lease"
    )

    LEASE_SECONDS: int = Field(
        default=90,
        ge=1,
        description="A processing job with no heartbeat for this long is considered stalled"
    )

    SWEEP_INTERVAL_SECONDS: int = Field(
        default=30,
        ge=1,
        description="How often the sweeper looks for stalled jobs and prunes retention"
    )

    STUCK_AFTER_SECONDS: int = Field(
        default=600,
        ge=1,
        description="A queued job never claimed within this window is reported as stuck"
    )

    RESULT_SNIPPET_LENGTH: int = Field(default=280, ge=20, le=2000)

    # ===== Client Polling =====
    POLL_INTERVAL_SECONDS: float = Field(default=1.5, gt=0)

    POLL_MAX_ATTEMPTS: int = Field(
        default=400,
        ge=1,
        description="Upper bound on status polls before the client gives up (~10 minutes)"
    )

    # ===== Job Record Store =====
    JOB_STORE_BACKEND: Literal["sqlite", "supabase"] = Field(
        default="sqlite",
        description="Where durable job records live"
    )

    JOB_DB_PATH: str = Field(
        default="generation_jobs.db",
        description="SQLite file for job records (sqlite backend)"
    )

    Storage_Path: str | None = Field(
        default=None,
        alias="STORAGE_PATH",
        description="Persistent volume mount path. If set, the SQLite file is placed there"
    )

    SUPABASE_URL: str | None = Field(default=None, description="Supabase project URL")

    SUPABASE_SERVICE_KEY: str | None = Field(
        default=None,
        description="Supabase service role key (server-side, bypasses RLS)"
    )

    SUPABASE_JOBS_TABLE: str = Field(default="ai_generation_jobs")

    @property
    def job_db_path(self) -> str:
        """Get the SQLite path, using STORAGE_PATH if available (Railway volume)."""
        if self.Storage_Path:
            return f"{self.Storage_Path.rstrip('/')}/{self.JOB_DB_PATH}"
        return self.JOB_DB_PATH

    # ===== Application Settings =====
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment mode: development or production"
    )

    DEBUG: bool = Field(default=True)

    DEV_MODE: bool = Field(
        default=True,
        description="Dev mode bypasses API key auth when no keys are configured"
    )

    @field_validator("DEBUG", "DEV_MODE", mode="before")
    @classmethod
    def parse_bool_string(cls, v):
        """Parse boolean from string values (Railway env vars are strings)."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes", "on")
        return False

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    API_HOST: str = Field(default="0.0.0.0")

    API_PORT: int = Field(default=8000, ge=1024, le=65535)

    # ===== Security Settings =====
    API_KEYS: str | None = Field(
        default=None,
        description="Comma-separated list of valid API keys. If empty/None and DEV_MODE=True, auth is bypassed."
    )

    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins. Use '*' for all (dev only)."
    )

    RATE_LIMIT_PER_MINUTE: int = Field(
        default=30,
        ge=0,
        le=1000,
        description="Max generation requests per minute per API key (0 = unlimited)"
    )

    DEFAULT_TENANT_ID: str = Field(
        default="default",
        description="Tenant used when a request carries no X-Tenant-Id header"
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Get list of valid API keys."""
        if not self.API_KEYS:
            return []
        return [k.strip() for k in self.API_KEYS.split(",") if k.strip()]

    @property
    def allowed_origins_list(self) -> list[str]:
        """Get list of allowed CORS origins ('*' is only honoured in dev mode)."""
        if self.ALLOWED_ORIGINS == "*":
            return ["*"] if self.DEV_MODE else []
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def auth_required(self) -> bool:
        """Check if authentication is required (False in dev mode with no keys)."""
        return bool(self.api_keys_list) or not self.DEV_MODE

    # ===== Computed Properties =====

    @property
    def can_generate_text(self) -> bool:
        return self.ANTHROPIC_API_KEY is not None

    @property
    def can_generate_images(self) -> bool:
        return self.REPLICATE_API_TOKEN is not None

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase is configured for the job record store."""
        return (
            self.SUPABASE_URL is not None
            and self.SUPABASE_SERVICE_KEY is not None
        )


# Global configuration instance
# Import this in other modules: from backend.config import config
config = AppConfig()


if __name__ == "__main__":
    print("Configuration loaded successfully!")
    print(f"Text model: {config.TEXT_MODEL_NAME}")
    print(f"Image model: {config.IMAGE_MODEL}")
    print(f"Redis: {'✓' if config.REDIS_URL else '✗'}")
    print(f"Job store: {config.JOB_STORE_BACKEND}")
    print(f"Text Generation: {'✓' if config.can_generate_text else '✗'}")
    print(f"Image Generation: {'✓' if config.can_generate_images else '✗'}")
    print(f"Supabase: {'✓' if config.supabase_configured else '✗'}")
