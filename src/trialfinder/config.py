"""Runtime settings.

Defaults live on the models below. A YAML file (configs/default.yaml by
convention) is merged over them, then a handful of environment variables
win over both. Call load_dotenv() before load_settings() to pick up .env.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, Field

logger = structlog.get_logger()

# env var -> (section, key)
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "TRIALFINDER_REGISTRY_URL": ("registry", "base_url"),
    "TRIALFINDER_TIMEOUT_SECONDS": ("registry", "timeout_seconds"),
    "TRIALFINDER_CACHE_TTL": ("cache", "ttl_seconds"),
    "TRIALFINDER_ZIP_TABLE": ("geocode", "table_path"),
    "TRIALFINDER_PROFILES": ("profiles", "path"),
    "PORT": ("server", "port"),
}


class RegistrySettings(BaseModel):
    base_url: str = "https://clinicaltrials.gov/api/v2"
    timeout_seconds: float = 30.0
    page_size: int = Field(default=20, ge=1, le=100)
    max_retries: int = Field(default=1, ge=1)  # 1 = single attempt
    default_statuses: list[str] = Field(
        default_factory=lambda: ["RECRUITING", "NOT_YET_RECRUITING"]
    )


class CacheSettings(BaseModel):
    ttl_seconds: float = 300.0
    enabled: bool = True


class GeocodeSettings(BaseModel):
    table_path: str | None = None  # None = national table from the zipcodes package


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class ProfileSettings(BaseModel):
    path: str | None = None


class Settings(BaseModel):
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    geocode: GeocodeSettings = Field(default_factory=GeocodeSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    profiles: ProfileSettings = Field(default_factory=ProfileSettings)


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name, "")
        if value:
            raw.setdefault(section, {})[key] = value
    return raw


def load_settings(path: Path | str | None = None) -> Settings:
    """Build Settings from defaults, an optional YAML file and the environment."""
    raw: dict[str, Any] = {}
    if path:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        logger.debug("settings_file_loaded", path=str(path))
    return Settings.model_validate(_apply_env_overrides(raw))
