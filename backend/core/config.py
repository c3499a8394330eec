from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./progression.db"
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_BASE_DELAY: float = 0.05  # seconds, exponential with jitter
    SUBMISSION_TIMEOUT_SECONDS: float = 10.0  # per attempt

    # Backend
    BACKEND_HOST: str = "0.0.0.0"
    BACKEND_PORT: int = 8000
    APP_DEBUG: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False  # True for production (structured JSON), False for dev (colored)
    LOG_SQL: bool = False   # Enable SQLAlchemy query logging

    # Gamification
    XP_BASE_LESSON: int = 100
    XP_PER_LEVEL: int = 1000
    STREAK_TIMEZONE: str = "UTC"  # IANA zone used to bucket activity into calendar days
    BADGE_CATALOG_PATH: str = "data/badges.yaml"

    @property
    def is_production(self) -> bool:
        return not self.APP_DEBUG

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
