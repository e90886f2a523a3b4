from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class Settings(BaseSettings):
    ENV: str = "dev"
    DB_PATH: str = "tlytics.db"
    SERVICE_HOST: str = "0.0.0.0"
    SERVICE_PORT: int = 8080
    # Seconds between periodic buffer drains
    FLUSH_PERIOD: float = 5.0
    LOG_JSON: bool = True
    LOG_LEVEL: str = "INFO"
    MAX_REQUEST_SIZE: int = 1048576
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 1000
    # What a drain does when its sink fails: "drop", "retry" or "spill"
    FAILURE_MODE: Literal["drop", "retry", "spill"] = "retry"
    RETRY_ATTEMPTS: int = 3
    RETRY_BACKOFF: float = 0.5
    RETRY_BACKOFF_MAX: float = 5.0
    SPILL_PATH: str | None = None
    # Emit an http_request event for every request the service handles
    TRACK_REQUESTS: bool = False

    model_config = SettingsConfigDict(env_prefix="TLYTICS_", env_file=".env", extra="ignore")

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
