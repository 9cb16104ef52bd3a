from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AnyUrl, Field

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ENV: str = Field(default="dev", description="dev|staging|prod")
    APP_NAME: str = "PitStop API"
    APP_VERSION: str = "1.0.0"
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8081

    # DB
    DB_URL: AnyUrl | str = "sqlite+aiosqlite:///./pitstop.db"
    DB_ECHO: bool = False
    AUTO_MIGRATE: bool = True

    # Tenant resolution when no X-Organization-ID header is sent
    DEFAULT_ORGANIZATION_ID: int | None = 1

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = "pitstop-debug.log"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:8080", "http://127.0.0.1:8080"]

@lru_cache
def get_settings() -> Settings:
    return Settings()
