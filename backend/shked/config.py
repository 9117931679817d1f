"""Application configuration."""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings."""

    # App
    APP_NAME: str = "Shked_Messenger_Bridge"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    # Database
    DATABASE_URL: str = "sqlite:///./shked.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # JWT
    JWT_SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    JWT_LEEWAY_SECONDS: int = 30  # clock skew tolerance for exp validation

    # Public URL used to build webhook addresses
    API_BASE_URL: str = "http://localhost:8000"

    # Telegram
    TELEGRAM_BOT_TOKEN: str | None = None
    TELEGRAM_BOT_USERNAME: str | None = None
    TELEGRAM_WEBHOOK_SECRET: str | None = None
    TELEGRAM_API_BASE_URL: str = "https://api.telegram.org"

    # Max
    MAX_BOT_TOKEN: str | None = None
    MAX_WEBHOOK_SECRET: str | None = None
    MAX_API_BASE_URL: str = "https://botapi.max.ru"

    # Account linking
    LINK_TOKEN_TTL_MINUTES: int = 15

    # Outbound delivery
    BOT_HTTP_TIMEOUT_SECONDS: float = 10.0
    # Wall-clock budget for one broadcast; recipients left over are reported as skipped.
    BROADCAST_BATCH_BUDGET_SECONDS: float = 300.0

    # Wall clock for class times and day boundaries (stored "HH:MM" are local)
    TIMEZONE: str = "Europe/Moscow"

    # Scheduled notifications
    REMINDER_MINUTES: int = 30
    DAILY_SUMMARY_HOUR: int = 7
    # Weekly homework summary goes out on Mondays at this local hour
    WEEKLY_SUMMARY_HOUR: int = 8
    HOMEWORK_REMINDER_HOURS: int = 24

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
