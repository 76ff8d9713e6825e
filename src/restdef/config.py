"""Library settings from environment variables (prefix RESTDEF_) or a .env file."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RESTDEF_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    # Observability
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"

    # Decoding: strict mode refuses coercions such as "42" -> 42 in bodies
    strict_body_decoding: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
