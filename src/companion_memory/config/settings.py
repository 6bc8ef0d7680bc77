# src/companion_memory/config/settings.py
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App Configuration
    APP_NAME: str = "Companion Memory"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Database Configuration
    DATABASE_URL: str = "sqlite+aiosqlite:///./companion_memory.db"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # Retrieval
    MEMORY_DEFAULT_LIMIT: int = Field(default=10, ge=1)
    MEMORY_MAX_LIMIT: int = Field(default=50, ge=1)

    # Feedback & decay
    MEMORY_EFFECTIVENESS_ALPHA: float = Field(default=0.2, gt=0.0, le=1.0)
    MEMORY_STALE_DAYS: int = Field(default=365, ge=1)
    MEMORY_EVICT_MAX_IMPORTANCE: int = 3
    MEMORY_EVICT_MAX_EFFECTIVENESS: float = 0.3
    MEMORY_SYNTHETIC_MIN_ACCESS: int = 2
    SWEEP_INTERVAL_SECONDS: int = Field(default=86400, ge=1)

    # Synthetic memories
    SYNTHETIC_TRUST_THRESHOLD: float = 7.0
    SYNTHETIC_PROBABILITY: float = Field(default=0.3, ge=0.0, le=1.0)

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    @property
    def uses_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")
