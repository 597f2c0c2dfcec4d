from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .config import CONFIG_FILE, AppConfig, load_config

ENV_PREFIX = "PDFTOOL_"


class Settings(BaseSettings):
    """Environment overrides layered on top of ``config.toml``."""

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, env_file=".env", extra="ignore")

    config_path: Path = CONFIG_FILE
    max_upload_mb: int | None = None
    max_dimension: int | None = None
    remote_api_key: str | None = None
    port: int | None = None


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


def apply_settings(config: AppConfig, settings: Settings) -> AppConfig:
    if settings.max_upload_mb is not None and settings.max_upload_mb > 0:
        config.runtime.max_upload_mb = settings.max_upload_mb
    if settings.max_dimension is not None and settings.max_dimension > 0:
        config.runtime.max_dimension = settings.max_dimension
    if settings.remote_api_key and settings.remote_api_key.strip():
        config.remote.api_key = settings.remote_api_key.strip()
    if settings.port is not None:
        config.api.port = settings.port
    return config


def load_settings_config(settings: Settings | None = None) -> AppConfig:
    settings = settings or get_settings()
    return apply_settings(load_config(settings.config_path), settings)


__all__ = ["ENV_PREFIX", "Settings", "apply_settings", "get_settings", "load_settings_config"]
