"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./formbridge.db"

    # Airtable API
    AIRTABLE_API_BASE: str = "https://api.airtable.com/v0"
    AIRTABLE_HTTP_TIMEOUT_SECONDS: float = 30.0
    AIRTABLE_CACHE_TTL_SECONDS: int = 300  # bases/tables metadata

    # Airtable webhook (HMAC-SHA256 shared secret)
    AIRTABLE_WEBHOOK_SECRET: str = ""
    WEBHOOK_MAX_PAYLOAD_BYTES: int = 1_000_000

    # Token Encryption (Fernet key for stored OAuth tokens)
    FERNET_KEY: str = ""

    # Internal scheduled endpoints (cron jobs)
    INTERNAL_SECRET: str = ""

    # Sync engine
    SYNC_BATCH_SIZE: int = 10
    SYNC_BATCH_DELAY_MS: int = 100
    SYNC_PAGE_DELAY_MS: int = 200
    SYNC_MAX_RETRIES: int = 3
    SYNC_RETRY_DELAY_MS: int = 50
    SYNC_RETRY_LIMIT: int = 100

    # Worker
    WORKER_POLL_INTERVAL: int = 60

    # Rate Limiting (requests per minute, 0 disables)
    RATE_LIMIT_WEBHOOK: int = 300
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
