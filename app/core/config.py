from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List, Optional


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "ShopSync"
    APP_PORT: int = 9202
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "shopsync"
    POSTGRES_PORT: int = 5432
    DATABASE_URL_OVERRIDE: Optional[str] = None

    # Shopify
    SHOPIFY_API_VERSION: str = "2023-04"
    SYNC_PAGE_SIZE: int = 250

    # HTTP client retry behaviour
    HTTP_MAX_ATTEMPTS: int = 5
    HTTP_RETRY_DELAY_SECONDS: float = 2.0
    HTTP_RATE_LIMIT_FALLBACK_SECONDS: float = 2.0
    HTTP_RATE_LIMIT_MARGIN_SECONDS: float = 1.0
    HTTP_BUCKET_THRESHOLD: float = 0.8
    HTTP_BUCKET_PAUSE_SECONDS: float = 0.5
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Queue
    QUEUE_BATCH_SIZE: int = 5
    QUEUE_DEFAULT_PRIORITY: int = 3
    QUEUE_MAX_RETRIES: int = 3
    BACKOFF_BASE_SECONDS: float = 1.0
    BACKOFF_CAP_SECONDS: float = 300.0
    RATE_LIMIT_DEFAULT_RETRY_AFTER: float = 60.0

    # Scheduler
    SCHEDULER_ENABLED: bool = True
    QUEUE_POLL_INTERVAL_SECONDS: int = 30

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    class Config:
        env_file = ".env"
        extra = "ignore"

@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
