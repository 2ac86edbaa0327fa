from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Blog Analytics API"
    version: str = "1.0.0"

    # "development" exposes exception detail in 500 responses
    environment: str = "production"

    database_url: str = ""
    store_timeout_seconds: float = 5.0
    pool_size: int = 5
    max_overflow: int = 10

    admin_token: str = ""
    max_bulk_events: int = 1000

    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() == "development"


@lru_cache
def get_settings() -> Settings:
    return Settings()
