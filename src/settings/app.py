"""Process-level settings read from the environment and ``.env``."""

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment overrides that sit outside the site configuration.

    None of these values enter the configuration hash: relocating the cache
    or build directory does not invalidate cached results.

    Attributes:
        server_url: Public URL used when the site config sets no ``server``.
        cache_dir: Replaces ``<root>/.iiif/cache``.
        build_dir: Replaces ``<root>/.iiif/build``.
        log_level: Level name for structlog output.
        debug_host: Bind address for ``serve``.
        debug_port: Port for ``serve``.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False, env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    server_url: str | None = Field(default=None, validation_alias="SERVER_URL")
    cache_dir: Path | None = Field(default=None, validation_alias="HSS_CACHE_DIR")
    build_dir: Path | None = Field(default=None, validation_alias="HSS_BUILD_DIR")
    log_level: str = Field(default="INFO", validation_alias="HSS_LOG_LEVEL")
    debug_host: str = Field(default="127.0.0.1", validation_alias="HSS_DEBUG_HOST")
    debug_port: int = Field(
        default=7111, ge=1, le=65535, validation_alias="HSS_DEBUG_PORT"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Accept only standard level names."""
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            msg = f"Unknown log level: {v}"
            raise ValueError(msg)
        return level


def get_settings() -> AppSettings:
    """Read settings from the environment."""
    return AppSettings()
