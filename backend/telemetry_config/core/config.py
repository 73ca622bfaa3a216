from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = Field(default="sqlite+pysqlite:///./telemetry_config.db")
    log_level: str = Field(default="INFO")
    default_poll_interval_index: int = Field(default=5, ge=1, le=13)
    warn_on_idle_ttnv3: bool = Field(default=True)
    enforce_parameter_name_pattern: bool = Field(default=False)
    db_auto_create: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
