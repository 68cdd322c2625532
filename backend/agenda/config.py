# backend/agenda/config.py

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # repo root


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/agenda.db"
    redis_url: str = "redis://localhost:6379/0"

    # Deployment timezone, used when an agent has none of their own
    timezone: str = "Europe/Paris"

    # Slot lists are advisory, keep them short-lived
    slots_cache_enabled: bool = True
    slots_cache_ttl_seconds: int = 300

    # "local" = per-process lock, "redis" = shared lock for multi-worker setups
    booking_lock_backend: Literal["local", "redis"] = "local"
    booking_lock_timeout_seconds: float = 10.0

    read_retry_attempts: int = 3

    remind_before_minutes: int = 120
    checkers_enabled: bool = True

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative SQLite path -> absolute, anchored at the repo root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url


settings = Settings()
