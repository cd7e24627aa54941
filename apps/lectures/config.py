from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List, Optional

class LecturesSettings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./lectures.db"

    # Redis settings (object storage + durable task queue)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: Optional[str] = None
    REDIS_TIMEOUT: int = 30000
    REDIS_DB: int = 0

    # External AI service
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4o"
    OPENAI_TIMEOUT: float = 60.0

    # Storage
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    UPLOAD_URL_TTL_SECONDS: int = 3600
    MAX_FILE_SIZE_BYTES: int = 100 * 1024 * 1024
    FETCH_TIMEOUT_SECONDS: float = 60.0

    # Search polling
    SEARCH_POLL_INTERVAL_SECONDS: float = 1.0
    SEARCH_MAX_POLL_ATTEMPTS: int = 120

    # Background tasks
    TASK_BACKEND: str = "memory"  # "memory" or "redis"
    TASK_MAX_ATTEMPTS: int = 3
    TASK_RETRY_DELAY_SECONDS: float = 5.0
    TASK_POLL_INTERVAL_SECONDS: float = 1.0
    TASK_LEASE_SECONDS: int = 300
    REQUEUE_UNPROCESSED_ON_STARTUP: bool = True

    # CORS settings
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: List[str] = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
    CORS_ALLOW_HEADERS: List[str] = [
        "*",
        "X-Forwarded-For",
        "X-Forwarded-Proto",
        "X-Forwarded-Host",
        "X-Requested-With",
        "Content-Type",
        "Authorization",
        "Accept",
        "Origin",
        "Cache-Control",
        "X-File-Name"
    ]

    class Config:
        env_prefix = "LECTURES_"
        env_file = ".env"
        extra = "ignore"  # Ignore extra fields from .env

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

@lru_cache()
def get_lectures_settings() -> LecturesSettings:
    return LecturesSettings()
