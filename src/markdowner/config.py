"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (MARKDOWNER__SERVER__PORT=9090)
  2. markdowner.yaml        (searched in cwd, then the platform config dir)
  3. Hardcoded defaults

The config file is optional; every field has a usable default.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("markdowner")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache.db")


def _find_config_file() -> str | None:
    """Return the path of the first markdowner.yaml found, or None."""
    candidates = [
        Path("markdowner.yaml"),
        Path(platformdirs.user_config_dir("markdowner")) / "markdowner.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ServerSettings(_Section):
    host: str = "0.0.0.0"
    port: int = 8080


class BrowserSettings(_Section):
    # Remote browser to connect to instead of launching a local Chromium.
    ws_endpoint: str | None = None
    headless: bool = True
    launch_retries: int = Field(default=3, ge=1)
    keep_alive_seconds: float = 60
    idle_tick_seconds: float = 10
    navigation_timeout_seconds: float = 30


class CacheSettings(_Section):
    db_path: str = _DEFAULT_DB_PATH
    ttl_seconds: int = 3600


class RateLimitSettings(_Section):
    rate: str = "100/minute"
    storage_uri: str = "memory://"


class SecuritySettings(_Section):
    # Bearer token that bypasses rate limiting. Empty disables the bypass.
    trusted_token: str = ""


class LLMSettings(_Section):
    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    model: str = "gpt-4o-mini"
    timeout_seconds: float = 60
    rate_limit_cost: int = 60


class TweetSettings(_Section):
    endpoint: str = "https://cdn.syndication.twimg.com/tweet-result"
    timeout_seconds: float = 10


class CrawlerSettings(_Section):
    max_subpages: int = 10


class LoggingSettings(_Section):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: MARKDOWNER__CACHE__TTL_SECONDS=60
        env_prefix="MARKDOWNER__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    browser: BrowserSettings = BrowserSettings()
    cache: CacheSettings = CacheSettings()
    ratelimit: RateLimitSettings = RateLimitSettings()
    security: SecuritySettings = SecuritySettings()
    llm: LLMSettings = LLMSettings()
    tweets: TweetSettings = TweetSettings()
    crawler: CrawlerSettings = CrawlerSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
