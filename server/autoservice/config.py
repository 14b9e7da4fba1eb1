"""
Application configuration using pydantic-settings.
"""

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


def find_env_file() -> str:
    """Find .env file by checking multiple locations."""
    current_dir = Path(__file__).parent
    candidates = [
        current_dir / ".env",  # server/autoservice/.env
        current_dir.parent / ".env",  # server/.env
        current_dir.parent.parent / ".env",  # project root/.env
    ]

    for candidate in candidates:
        if candidate.exists():
            return str(candidate)

    # Default to project root
    return str(current_dir.parent.parent / ".env")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database (used by the "sql" record store backend)
    DATABASE_URL: str = "sqlite+aiosqlite:///./autoservice.db"

    # Record store backend: "sql" talks to DATABASE_URL directly,
    # "rest" calls the hosted database's REST/RPC surface.
    RECORD_STORE_BACKEND: str = "sql"

    # Hosted database (REST backend)
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    STORE_TIMEOUT: float = 10.0  # seconds

    # Audit
    DEFAULT_ACTOR: str = "user"  # No real identity exists yet, every change is made as "user"
    DELETED_RECORDS_LIMIT: int = 50

    # Business Logic
    SERVICE_CENTER_NAME: str = "Auto Service Center"


settings = Settings()
