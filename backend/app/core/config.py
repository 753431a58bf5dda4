"""
Application configuration settings.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    APP_ENV: str = "development"
    DEBUG: bool = True
    APP_NAME: str = "Pumpkin Patch API"
    API_V1_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Database
    # Production deployments point this at postgresql+asyncpg://...
    DATABASE_URL: str = "sqlite+aiosqlite:///./pumpkin_patch.db"
    DB_ISOLATION_LEVEL: str = "SERIALIZABLE"
    SQLITE_BUSY_TIMEOUT: float = 15.0

    # JWT Authentication
    SECRET_KEY: str = "your-super-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Accounts registered with one of these emails become administrators
    ADMIN_EMAILS: list[str] = []

    # Submissions
    MAX_IMAGE_BYTES: int = 800 * 1024

    # Transactions
    TRANSACTION_MAX_ATTEMPTS: int = 3
    TRANSACTION_RETRY_DELAY: float = 0.05
    RESET_BATCH_SIZE: int = 500

    # Live feed
    LIVE_FEED_KEEPALIVE_SECONDS: float = 15.0

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
