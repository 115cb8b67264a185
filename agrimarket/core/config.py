from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PROJECT_NAME: str = "agrimarket"

    # Database
    DATABASE_URL: str = "sqlite:///./agrimarket.db"

    # JWT
    SECRET_KEY: str = "change-me-in-production"  # Change this in production
    ALGORITHM: str = "HS512"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost",
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Server-sent events
    SSE_HEARTBEAT_SECONDS: float = 15.0
    SSE_IDLE_TIMEOUT_SECONDS: float = 1800.0
    SSE_QUEUE_SIZE: int = 100

    # Background pools
    LEDGER_POOL_WORKERS: int = 2
    LEDGER_POOL_QUEUE: int = 50

    LOG_LEVEL: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
