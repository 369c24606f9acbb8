from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    api_url: str = Field(default="", alias="API_URL")
    ai_service_url: str = Field(
        default="https://barberdev-microservice.onrender.com",
        alias="AI_SERVICE_URL",
    )
    request_timeout_seconds: float = Field(default=15.0, alias="REQUEST_TIMEOUT_SECONDS")
    availability_debounce_ms: int = Field(default=300, alias="AVAILABILITY_DEBOUNCE_MS")
    token_path: str = Field(default="~/.barbershop/token", alias="TOKEN_PATH")
    session_watch_interval_seconds: float = Field(default=2.0, alias="SESSION_WATCH_INTERVAL_SECONDS")
    shop_timezone: Optional[str] = Field(default=None, alias="SHOP_TIMEZONE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    @property
    def api_base_url(self) -> str:
        return self.api_url.strip().rstrip("/")

    @property
    def token_file(self) -> Path:
        return Path(self.token_path).expanduser()

    @property
    def availability_debounce_seconds(self) -> float:
        return max(self.availability_debounce_ms, 0) / 1000


@lru_cache
def get_settings() -> Settings:
    return Settings()
