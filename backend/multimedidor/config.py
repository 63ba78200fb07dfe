# backend/multimedidor/config.py

from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Where readings live: embedded SQLite, a flat JSON file or memory only
    STORE_BACKEND: Literal["sqlite", "json", "memory"] = "sqlite"

    # Connection string for SQLite (async driver)
    DATABASE_URL: str = "sqlite+aiosqlite:///./multimedidor.db"

    # JSON file used by the "json" backend
    DATA_FILE: str = "dados.json"

    # Max readings kept; oldest are dropped first
    STORE_CAPACITY: int = 10000

    # Timezone used for hour-of-day / calendar-date labels
    TIMEZONE: str = "America/Sao_Paulo"

    SERVER_NAME: str = "Multimedidor UFRJ"

    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8080

    # Allowed CORS origins for the dashboard
    FRONTEND_URLS: list[str] = ["*"]

    # None logs to stderr
    LOG_FILE: Optional[str] = None
    LOG_LEVEL: str = "INFO"


settings = Settings()
