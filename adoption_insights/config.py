"""
Application configuration management
"""

from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Adoption Insights"
    APP_VERSION: str = "1.0.0"
    APP_ENV: str = "development"
    DEBUG: bool = False
    API_PREFIX: str = "/api/adoption-insights"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 7007

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./adoption_insights.db"

    @field_validator('DATABASE_URL')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if v.startswith('postgresql://'):
            v = v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        elif v.startswith('sqlite://'):
            v = v.replace('sqlite://', 'sqlite+aiosqlite://', 1)
        return v
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 3600
    DB_ECHO: bool = False

    # Event ingestion
    EVENTS_BATCH_SIZE: int = 5
    EVENTS_BATCH_INTERVAL_MS: int = 2000
    EVENTS_MAX_RETRIES: int = 3
    EVENTS_DEBUG: bool = False

    @field_validator('EVENTS_BATCH_SIZE', 'EVENTS_BATCH_INTERVAL_MS', 'EVENTS_MAX_RETRIES')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    # Licensing
    LICENSED_USERS: int = 100

    # Partitions (Postgres only)
    PARTITION_MAX_RETRIES: int = 1
    PARTITION_TASK_TIMEOUT_SECONDS: int = 60

    # Techdocs backend, used to resolve site names for top_techdocs
    TECHDOCS_BASE_URL: str = "http://localhost:7007/api/techdocs"
    TECHDOCS_TIMEOUT_SECONDS: float = 10.0

    # Monitoring
    PROMETHEUS_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    LOG_FILE: str = "logs/app.log"

    @property
    def is_testing(self) -> bool:
        return self.APP_ENV == "testing"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Create global settings instance
settings = Settings()
