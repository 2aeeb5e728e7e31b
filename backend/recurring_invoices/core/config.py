from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DEBUG: bool = False
    APP_NAME: str = "Recurring Invoices"
    version: str = "0.1.0"
    APP_DOMAIN: str = "example.com"
    APP_URL: str = "http://localhost:3000"
    APP_DATABASE_DSN: str = "sqlite:////tmp/database.db"
    REDIS_URL: str = "redis://localhost:6379"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Bearer secret expected from the external cron caller; empty disables the check
    CRON_SECRET: str = ""

    # Generation transaction bounds
    GENERATION_LOCK_TIMEOUT_MS: int = 5000
    GENERATION_TIMEOUT_MS: int = 10000
    DB_ISOLATION_LEVEL: str = "READ COMMITTED"

    # Batch runner
    BATCH_MAX_WORKERS: int = 1

    # Projection engine
    PROJECTION_MAX_ITERATIONS: int = 12
    PROJECTION_RECENT_INVOICES: int = 10

    # Notification transport (HTTP email API)
    EMAIL_API_URL: str = ""
    EMAIL_API_KEY: str = ""
    EMAIL_FROM_EMAIL: str = "billing@example.com"
    EMAIL_FROM_NAME: str = "Billing"
    EMAIL_TIMEOUT_SECONDS: float = 10.0

    @property
    def email_enabled(self) -> bool:
        return bool(self.EMAIL_API_URL)


settings = Settings()
