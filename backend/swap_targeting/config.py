"""Settings — environment-driven configuration for the swap targeting service.

Invariants:
    - One Settings instance per process (get_settings is lru_cached)
    - The database URL always names an async driver
    - Every quota and threshold is a positive integer

Design Decisions:
    - pydantic-settings: .env support plus validation at startup instead of at first use
    - Quotas are per user and per bucket over one shared window
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = "postgresql+asyncpg://swaps:swaps@db:5432/swaps"
    database_pool_size: int = Field(default=20, ge=1)
    database_max_overflow: int = Field(default=10, ge=0)

    # HTTP surface
    cors_origins: list[str] = ["http://localhost:5173"]
    user_id_header: str = "X-User-Id"  # set by the upstream auth gateway
    max_page_size: int = Field(default=100, ge=1)

    # Quotas, requests per window per user
    rate_limit_window_seconds: int = Field(default=60, ge=1)
    rate_limit_targeting: int = Field(default=10, ge=1)
    rate_limit_retargeting: int = Field(default=5, ge=1)
    rate_limit_removal: int = Field(default=10, ge=1)
    rate_limit_resolution: int = Field(default=10, ge=1)
    rate_limit_reads: int = Field(default=100, ge=1)

    # Auction warning once this many proposals are pending
    auction_crowded_threshold: int = Field(default=5, ge=1)

    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    @field_validator("database_url", mode="before")
    @classmethod
    def use_async_driver(cls, v):
        if isinstance(v, str):
            for prefix in ("postgres://", "postgresql://"):
                if v.startswith(prefix):
                    return "postgresql+asyncpg://" + v[len(prefix):]
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
